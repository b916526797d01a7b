# chatdesk/models/settings.py
"""
Widget and system settings read by the AI gate, plus AI knowledge snippets.
"""
from sqlalchemy import Column, String, Text, Boolean, Integer, JSON, ForeignKey
from chatdesk.models.base import Base, BaseModel


class WidgetSetting(BaseModel):
    """Per-tenant widget configuration"""
    __tablename__ = "widget_settings"

    tenant_id = Column(String(100), unique=True, index=True, nullable=False)
    ai_enabled = Column(Boolean, default=True, nullable=False)
    ai_personality = Column(String(50), default="friendly", nullable=False)
    # Opt-in phrases that force a hand-off on top of the built-in list
    auto_transfer_keywords = Column(JSON, nullable=True)
    welcome_message = Column(Text, nullable=True, default="Hello! How can we help you today?")
    ai_welcome_message = Column(Text, nullable=True)
    offline_message = Column(
        Text, nullable=True,
        default="We are currently offline. Please leave a message and we will get back to you soon."
    )

    def __repr__(self):
        return f"<WidgetSetting tenant_id={self.tenant_id} ai={self.ai_enabled}>"


class SystemSetting(Base):
    """
    Global key/value settings (no tenant isolation).
    The AI engine reads 'openai_api_key' and the 'ai' category.
    """
    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), unique=True, index=True, nullable=False)
    value = Column(Text, nullable=True)
    category = Column(String(50), index=True, nullable=True)

    def __repr__(self):
        return f"<SystemSetting {self.setting_key}>"


class KnowledgeDoc(BaseModel):
    """Brand or tenant level training snippet injected into the AI prompt"""
    __tablename__ = "knowledge_docs"

    brand_id = Column(Integer, ForeignKey("brands.id"), index=True, nullable=True)  # NULL = tenant-wide
    category = Column(String(100), nullable=False, default="general")
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<KnowledgeDoc {self.title}>"
