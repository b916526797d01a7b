# chatdesk/models/visitor.py
"""
Visitor models - website guests talking to the chat widget.
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from chatdesk.models.base import BaseModel

# Presence states a visitor can be in
VISITOR_STATUSES = ("online", "away", "offline", "idle", "waiting_for_agent")
# States the widget may set explicitly
SETTABLE_STATUSES = ("online", "away", "offline", "idle")
# Weak states that an activity signal relaxes into 'idle'
RELAXABLE_STATUSES = ("offline", "away")
WIDGET_STATUSES = ("minimized", "maximized")


class Visitor(BaseModel):
    """One durable record per browser-identified visitor"""
    __tablename__ = "visitors"

    # Widget-generated id, stable across page loads
    id = Column(String(36), primary_key=True)
    session_id = Column(String(255), index=True, nullable=False)

    name = Column(String(255), nullable=False, default="Anonymous Visitor")
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    avatar = Column(String(500), nullable=True)

    status = Column(String(30), index=True, nullable=False, default="idle")
    is_typing = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    current_page = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    location = Column(JSON, nullable=True, default=dict)
    device = Column(JSON, nullable=True, default=dict)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    tags = Column(JSON, nullable=True, default=list)
    notes = Column(Text, nullable=True)

    last_activity = Column(DateTime, index=True, default=datetime.utcnow)
    session_duration = Column(Integer, default=0, nullable=False)  # seconds
    messages_count = Column(Integer, default=0, nullable=False)
    visits_count = Column(Integer, default=1, nullable=False)

    # Traffic attribution
    source = Column(String(255), nullable=True)
    medium = Column(String(255), nullable=True)
    campaign = Column(String(255), nullable=True)
    content = Column(String(255), nullable=True)
    term = Column(String(255), nullable=True)
    keyword = Column(String(500), nullable=True)
    search_engine = Column(String(255), nullable=True)
    landing_page = Column(Text, nullable=True)

    widget_status = Column(String(20), nullable=True)  # 'minimized' | 'maximized'
    last_widget_update = Column(DateTime, nullable=True)

    brand_id = Column(Integer, ForeignKey("brands.id"), index=True, nullable=True)
    assigned_agent_id = Column(Integer, ForeignKey("agents.id"), index=True, nullable=True)

    # Rating, feedback and other opaque widget data
    meta_data = Column(JSON, nullable=True, default=dict)

    brand = relationship("Brand", lazy="joined")
    assigned_agent = relationship("Agent", lazy="joined")

    def __repr__(self):
        return f"<Visitor {self.id} status={self.status}>"


class VisitorActivity(BaseModel):
    """Latest detailed activity for a visitor (one row per visitor, updated in place)"""
    __tablename__ = "visitor_activities"

    visitor_id = Column(String(36), ForeignKey("visitors.id"), index=True, nullable=False)
    session_id = Column(String(255), nullable=True)
    activity_type = Column(String(100), nullable=False)
    activity_data = Column(JSON, nullable=True, default=dict)
    page_url = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<VisitorActivity {self.visitor_id} {self.activity_type}>"


Index('idx_visitor_tenant_status', Visitor.tenant_id, Visitor.status)
