# chatdesk/models/handoff.py
"""Durable audit trail of conversation hand-offs"""
from sqlalchemy import Column, String, Text, Integer, ForeignKey
from chatdesk.models.base import BaseModel

HANDOFF_TYPES = ("ai_to_agent", "visitor_request", "agent_accept")


class HandoffEvent(BaseModel):
    """
    One row per completed hand-off.
    to_agent_id is NULL for transfers into the tenant-wide pool.
    """
    __tablename__ = "handoff_events"

    visitor_id = Column(String(36), ForeignKey("visitors.id"), index=True, nullable=False)
    brand_id = Column(Integer, nullable=True)
    from_agent_id = Column(Integer, nullable=True)
    to_agent_id = Column(Integer, index=True, nullable=True)
    handoff_type = Column(String(30), nullable=False)
    reason = Column(Text, nullable=True)

    def __repr__(self):
        return f"<HandoffEvent {self.handoff_type} {self.visitor_id} -> {self.to_agent_id}>"
