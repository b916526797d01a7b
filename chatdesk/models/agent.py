# chatdesk/models/agent.py
"""Agents, brands and the agent <-> brand roster"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from chatdesk.models.base import BaseModel

AGENT_PRESENCE_STATUSES = ("online", "away", "busy", "offline")


class Agent(BaseModel):
    """Support agent account. Credentials live in the dashboard's auth service."""
    __tablename__ = "agents"

    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True, nullable=False)
    avatar = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # 'active' | 'inactive'
    presence_status = Column(String(20), nullable=False, default="offline")
    last_login = Column(DateTime, nullable=True)

    def public_profile(self):
        return {"id": self.id, "name": self.name, "email": self.email, "avatar": self.avatar}

    def __repr__(self):
        return f"<Agent {self.name} {self.presence_status}>"


class Brand(BaseModel):
    """A storefront under a tenant with its own agent roster and widget key"""
    __tablename__ = "brands"

    name = Column(String(255), nullable=False)
    widget_key = Column(String(100), unique=True, index=True, nullable=False)
    primary_color = Column(String(7), nullable=True)

    def __repr__(self):
        return f"<Brand {self.name}>"


class BrandAgent(BaseModel):
    __tablename__ = "brand_agents"
    __table_args__ = (
        UniqueConstraint('brand_id', 'agent_id', name='uq_brand_agent'),
    )

    brand_id = Column(Integer, ForeignKey("brands.id"), index=True, nullable=False)
    agent_id = Column(Integer, ForeignKey("agents.id"), index=True, nullable=False)
    status = Column(String(20), index=True, nullable=False, default="active")  # 'active' | 'inactive'
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    agent = relationship("Agent", lazy="joined")

    def __repr__(self):
        return f"<BrandAgent brand={self.brand_id} agent={self.agent_id}>"
