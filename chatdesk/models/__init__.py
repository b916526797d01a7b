from chatdesk.models.base import Base, BaseModel
from chatdesk.models.agent import Agent, Brand, BrandAgent
from chatdesk.models.visitor import Visitor, VisitorActivity
from chatdesk.models.message import VisitorMessage
from chatdesk.models.settings import WidgetSetting, SystemSetting, KnowledgeDoc
from chatdesk.models.handoff import HandoffEvent

__all__ = [
    "Base", "BaseModel",
    "Agent", "Brand", "BrandAgent",
    "Visitor", "VisitorActivity", "VisitorMessage",
    "WidgetSetting", "SystemSetting", "KnowledgeDoc",
    "HandoffEvent",
]
