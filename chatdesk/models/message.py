# chatdesk/models/message.py
"""
Conversation turns between a visitor and the AI, agents, or the system.
"""
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey
from chatdesk.models.base import BaseModel

SENDER_TYPES = ("visitor", "agent", "ai", "system")
MESSAGE_TYPES = ("text", "image", "file", "system", "ai_suggestion")


class VisitorMessage(BaseModel):
    """A single message in a visitor conversation. Immutable except for read state."""
    __tablename__ = "visitor_messages"

    visitor_id = Column(String(36), ForeignKey("visitors.id"), index=True, nullable=False)
    sender_type = Column(String(20), index=True, nullable=False, default="visitor")
    sender_id = Column(Integer, nullable=True)  # agent id when sender_type == 'agent'
    sender_name = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    meta_data = Column(JSON, nullable=True, default=dict)

    def __repr__(self):
        return f"<VisitorMessage {self.id} {self.sender_type} -> {self.visitor_id}>"
