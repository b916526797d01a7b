# chatdesk/services/__init__.py
"""
Service layer initialization.
Provides the shared notifier and service factories.
"""
from chatdesk.core import config
from chatdesk.services.agent_selector import AgentSelector, get_selector
from chatdesk.services.ai_engine import AIEngine
from chatdesk.services.ai_gate import AIResponseGate
from chatdesk.services.handoff_service import HandoffCoordinator
from chatdesk.services.visitor_service import VisitorService
from chatdesk.ws.notifier import Notifier, WebSocketNotifier

# Global notifier instance
_notifier: Notifier = WebSocketNotifier()

# Global AI engine instance
_ai_engine: AIEngine = AIEngine()


def set_notifier(notifier: Notifier):
    """Set global notifier instance"""
    global _notifier
    _notifier = notifier


def get_notifier() -> Notifier:
    """Get global notifier instance"""
    return _notifier


def set_ai_engine(engine: AIEngine):
    """Set global AI engine instance"""
    global _ai_engine
    _ai_engine = engine


def get_ai_engine() -> AIEngine:
    """Get global AI engine instance"""
    return _ai_engine


def get_agent_selector() -> AgentSelector:
    """Selector configured by AGENT_SELECTION_STRATEGY"""
    return get_selector(config.AGENT_SELECTION_STRATEGY)


def get_visitor_service() -> VisitorService:
    """Get VisitorService instance with the notifier"""
    return VisitorService(_notifier)


def get_handoff_coordinator() -> HandoffCoordinator:
    """Get HandoffCoordinator instance with the notifier and configured selector"""
    return HandoffCoordinator(_notifier, get_agent_selector())


def get_ai_gate() -> AIResponseGate:
    """Get AIResponseGate wired to the AI engine and hand-off coordinator"""
    return AIResponseGate(_ai_engine, get_handoff_coordinator(), _notifier)


__all__ = [
    'VisitorService',
    'HandoffCoordinator',
    'AIEngine',
    'AIResponseGate',
    'set_notifier',
    'get_notifier',
    'set_ai_engine',
    'get_ai_engine',
    'get_agent_selector',
    'get_visitor_service',
    'get_handoff_coordinator',
    'get_ai_gate',
]
