# chatdesk/schemas/visitor.py
"""
Request/response schemas for the widget and agent visitor APIs.
The widget speaks camelCase; Python code uses snake_case attributes.
"""
from pydantic import BaseModel, Field, StrictBool
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime


class WidgetModel(BaseModel):
    """Base for widget payloads: camelCase on the wire, snake_case in code"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        coerce_numbers_to_str = True


class VisitorRef(WidgetModel):
    visitor_id: str = Field(..., min_length=1, max_length=36)
    tenant_id: str = Field(..., min_length=1, max_length=100)


# ────────────────────────────────────────────
# Widget session
# ────────────────────────────────────────────

class WidgetSessionRequest(WidgetModel):
    widget_key: str = Field(..., min_length=1)
    visitor_id: str = Field(..., min_length=1, max_length=36)


# ────────────────────────────────────────────
# Visitor tracking
# ────────────────────────────────────────────

class VisitorUpsert(VisitorRef):
    """
    Profile, device and tracking data sent by the widget on page load.
    Every optional field left empty keeps the stored value.
    """
    session_id: str = Field(..., min_length=1, max_length=255)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    current_page: Optional[str] = None
    referrer: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    device: Optional[Dict[str, Any]] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    tags: Optional[List[str]] = None

    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    content: Optional[str] = None
    term: Optional[str] = None
    keyword: Optional[str] = None
    search_engine: Optional[str] = None
    landing_page: Optional[str] = None

    is_returning: bool = False

    # Opaque widget data, stored but never used for control flow
    extra: Dict[str, Any] = Field(default_factory=dict)


class ActivityPing(VisitorRef):
    page: Optional[str] = None
    activity: Optional[str] = None
    timestamp: Optional[datetime] = None


class StatusUpdate(VisitorRef):
    status: str


class TypingUpdate(VisitorRef):
    is_typing: StrictBool


class WidgetStatusUpdate(VisitorRef):
    status: str
    timestamp: Optional[datetime] = None


class VisitorMessageCreate(VisitorRef):
    message: Optional[str] = None
    message_type: str = "text"
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None


class AIChatRequest(VisitorRef):
    message: str = Field(..., min_length=1, max_length=4000)


class AgentRequest(VisitorRef):
    reason: Optional[str] = None


class EndChatRequest(VisitorRef):
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = None


class RatingSubmit(VisitorRef):
    rating: int
    feedback: Optional[str] = None


class ActivityLogCreate(VisitorRef):
    activity_type: str = Field(..., min_length=1, max_length=100)
    activity_data: Dict[str, Any] = Field(default_factory=dict)
    page_url: Optional[str] = None
    timestamp: Optional[datetime] = None


# ────────────────────────────────────────────
# Outbound representations
# ────────────────────────────────────────────

class AgentSummary(WidgetModel):
    id: int
    name: str
    avatar: Optional[str] = None

    class Config:
        from_attributes = True


class BrandSummary(WidgetModel):
    id: int
    name: str
    primary_color: Optional[str] = None

    class Config:
        from_attributes = True


class VisitorOut(WidgetModel):
    """Visitor as shown on agent dashboards and in realtime events"""
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    status: str
    current_page: Optional[str] = None
    referrer: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    device: Optional[Dict[str, Any]] = None
    last_activity: Optional[datetime] = None
    session_duration: int = 0
    messages_count: int = 0
    visits_count: int = 1
    is_typing: bool = False
    is_active: bool = True
    assigned_agent_id: Optional[int] = None
    assigned_agent: Optional[AgentSummary] = None
    brand_id: Optional[int] = None
    brand: Optional[BrandSummary] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    landing_page: Optional[str] = None
    widget_status: Optional[str] = None
    last_widget_update: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VisitorMessageOut(WidgetModel):
    id: int
    visitor_id: str
    sender_type: str
    sender_id: Optional[int] = None
    sender_name: Optional[str] = None
    message: str
    message_type: str
    is_read: bool
    read_at: Optional[datetime] = None
    meta_data: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    created_at: datetime

    class Config:
        from_attributes = True


def visitor_payload(visitor) -> Dict[str, Any]:
    """Serialize a Visitor row for realtime events"""
    return VisitorOut.model_validate(visitor).model_dump(by_alias=True)


def message_payload(message) -> Dict[str, Any]:
    return VisitorMessageOut.model_validate(message).model_dump(by_alias=True)


# ────────────────────────────────────────────
# Agent side
# ────────────────────────────────────────────

class AgentMessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)


class PresenceUpdate(BaseModel):
    presence_status: str
