# chatdesk/api/v1/widget.py
"""
Public widget endpoints - called by the embeddable chat widget.

Every visitor-scoped call carries the widget session token (X-Widget-Token)
issued by POST /session; tenant and visitor ids in the body must match it.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from chatdesk.api.deps import check_widget_scope, get_widget_claims
from chatdesk.core.exceptions import NotFoundError
from chatdesk.core.jwt_auth import WidgetSessionToken
from chatdesk.db.session import get_db
from chatdesk.models.agent import Agent, Brand
from chatdesk.models.settings import SystemSetting, WidgetSetting
from chatdesk.schemas.visitor import (
    ActivityLogCreate, ActivityPing, AgentRequest, AIChatRequest, EndChatRequest,
    RatingSubmit, StatusUpdate, TypingUpdate, VisitorMessageCreate, VisitorRef,
    VisitorUpsert, WidgetSessionRequest, WidgetStatusUpdate,
    message_payload, visitor_payload,
)
from chatdesk.services import (
    get_ai_gate, get_handoff_coordinator, get_notifier, get_visitor_service
)
from chatdesk.services.ai_gate import AIResponseGate
from chatdesk.services.handoff_service import HandoffCoordinator
from chatdesk.services.visitor_service import VisitorService
from chatdesk.ws.notifier import Notifier

log = logging.getLogger("chatdesk.api.widget")

router = APIRouter()


def _ok(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# ────────────────────────────────────────────
# Session & tenant-level info
# ────────────────────────────────────────────

@router.post("/session")
def create_widget_session(data: WidgetSessionRequest, db: Session = Depends(get_db)):
    """Exchange a brand widget key for a signed widget session token"""
    brand = db.query(Brand).filter(Brand.widget_key == data.widget_key).first()
    if not brand:
        raise NotFoundError("Invalid widget key")

    issued = WidgetSessionToken.issue(brand.tenant_id, brand.id, data.visitor_id)
    log.info(f"🔑 Widget session issued for visitor {data.visitor_id} (tenant {brand.tenant_id}, brand {brand.id})")
    return _ok({
        "token": issued["token"],
        "expiresAt": issued["expires_at"].isoformat(),
        "tenantId": brand.tenant_id,
        "brandId": brand.id,
        "brandName": brand.name,
        "primaryColor": brand.primary_color,
    })


@router.get("/settings/{tenant_id}")
def get_widget_settings(tenant_id: str, db: Session = Depends(get_db)):
    """Public widget configuration for a tenant"""
    settings = db.query(WidgetSetting).filter(WidgetSetting.tenant_id == tenant_id).first()
    ai_name = db.query(SystemSetting).filter(SystemSetting.setting_key == "ai_agent_name").first()

    if not settings:
        return _ok({
            "aiEnabled": False,
            "aiPersonality": "friendly",
            "autoTransferKeywords": [],
            "welcomeMessage": "Hello! How can we help you today?",
            "aiWelcomeMessage": None,
            "offlineMessage": "We are currently offline. Please leave a message and we will get back to you soon.",
            "aiAgentName": ai_name.value if ai_name and ai_name.value else "AI Assistant",
        })

    return _ok({
        "aiEnabled": settings.ai_enabled,
        "aiPersonality": settings.ai_personality,
        "autoTransferKeywords": settings.auto_transfer_keywords or [],
        "welcomeMessage": settings.welcome_message,
        "aiWelcomeMessage": settings.ai_welcome_message,
        "offlineMessage": settings.offline_message,
        "aiAgentName": ai_name.value if ai_name and ai_name.value else "AI Assistant",
    })


@router.get("/agent-availability/{tenant_id}")
def get_agent_availability(
    tenant_id: str,
    db: Session = Depends(get_db),
    coordinator: HandoffCoordinator = Depends(get_handoff_coordinator)
):
    online = coordinator.online_agents(db, tenant_id)
    return _ok({
        "available": bool(online),
        "onlineAgents": len(online),
    })


# ────────────────────────────────────────────
# Visitor tracking
# ────────────────────────────────────────────

@router.post("/visitor")
def upsert_visitor(
    data: VisitorUpsert,
    request: Request,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service),
    notifier: Notifier = Depends(get_notifier)
):
    """Create or update the visitor on widget load"""
    check_widget_scope(claims, data.tenant_id, data.visitor_id)

    if claims is not None:
        brand_id = claims.get("brand_id")
    else:
        brand = db.query(Brand).filter(Brand.tenant_id == data.tenant_id).order_by(Brand.id).first()
        brand_id = brand.id if brand else None

    if not data.ip_address:
        data.ip_address = _client_ip(request)

    visitor, created = service.upsert_visitor(db, data.tenant_id, data, brand_id=brand_id)

    notifier.to_tenant(data.tenant_id, "visitor:new" if created else "visitor:update", visitor_payload(visitor))

    return _ok(
        {"visitorId": visitor.id, "created": created, "status": visitor.status},
        message="Visitor created" if created else "Visitor updated"
    )


@router.post("/visitor/activity")
def visitor_activity(
    data: ActivityPing,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    visitor = service.record_activity(db, data.tenant_id, data.visitor_id, page=data.page, timestamp=data.timestamp)
    return _ok({"updated": visitor is not None, "status": visitor.status if visitor else None})


@router.post("/visitor/status")
def visitor_status(
    data: StatusUpdate,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    visitor = service.set_status(db, data.tenant_id, data.visitor_id, data.status)
    return _ok({"updated": visitor is not None, "status": visitor.status if visitor else None})


@router.post("/visitor/typing")
def visitor_typing(
    data: TypingUpdate,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    visitor = service.set_typing(db, data.tenant_id, data.visitor_id, data.is_typing)
    return _ok({"updated": visitor is not None, "isTyping": data.is_typing})


@router.post("/visitor/widget-status")
def widget_status(
    data: WidgetStatusUpdate,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    visitor = service.set_widget_status(db, data.tenant_id, data.visitor_id, data.status, timestamp=data.timestamp)
    return _ok({"updated": visitor is not None, "widgetStatus": data.status})


@router.post("/visitor/activity-log")
def activity_log(
    data: ActivityLogCreate,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    activity = service.log_activity(
        db, data.tenant_id, data.visitor_id,
        activity_type=data.activity_type,
        activity_data=data.activity_data,
        page_url=data.page_url,
        timestamp=data.timestamp
    )
    return _ok({"activityType": activity.activity_type, "timestamp": activity.timestamp.isoformat()})


# ────────────────────────────────────────────
# Conversation
# ────────────────────────────────────────────

@router.post("/visitor/message")
def visitor_message(
    data: VisitorMessageCreate,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    message = service.record_message(
        db, data.tenant_id, data.visitor_id,
        text=data.message,
        message_type=data.message_type,
        attachment={"file_url": data.file_url, "file_name": data.file_name, "file_size": data.file_size}
    )
    return _ok(message_payload(message), message="Message sent")


@router.post("/chat/ai")
async def chat_with_ai(
    data: AIChatRequest,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    gate: AIResponseGate = Depends(get_ai_gate)
):
    """Answer with the AI, or hand the visitor to a human agent"""
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    result = await gate.handle_message(db, data.tenant_id, data.visitor_id, data.message)
    return _ok(result)


@router.post("/visitor/request-agent")
def request_agent(
    data: AgentRequest,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    coordinator: HandoffCoordinator = Depends(get_handoff_coordinator)
):
    """Visitor explicitly asks for a human, bypassing the AI"""
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    result = coordinator.request_agent(db, data.visitor_id, data.tenant_id, reason=data.reason)
    if not result.success:
        return {"success": False, "message": result.message, "data": {"transferred": False}}
    return _ok({"transferred": True}, message=result.message)


@router.post("/visitor/end-chat")
def end_chat(
    data: EndChatRequest,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    visitor = service.end_chat(db, data.tenant_id, data.visitor_id, rating=data.rating, feedback=data.feedback)
    return _ok({"updated": visitor is not None}, message="Chat ended")


@router.post("/visitor/session-status")
def session_status(
    data: VisitorRef,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    return _ok(service.session_status(db, data.tenant_id, data.visitor_id))


@router.post("/visitor/submit-rating")
def submit_rating(
    data: RatingSubmit,
    db: Session = Depends(get_db),
    claims: Optional[Dict[str, Any]] = Depends(get_widget_claims),
    service: VisitorService = Depends(get_visitor_service)
):
    check_widget_scope(claims, data.tenant_id, data.visitor_id)
    service.submit_rating(db, data.tenant_id, data.visitor_id, data.rating, feedback=data.feedback)
    return _ok({"rating": data.rating}, message="Rating submitted successfully")
