"""chatdesk - visitor sessions and AI-to-agent hand-off for a live-chat widget"""

__version__ = "1.0.0"
