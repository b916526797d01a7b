# chatdesk/services/visitor_service.py
"""
Visitor session tracker - presence, activity and conversation state of
website visitors talking to the chat widget.

Presence rules:
- Background signals (upsert, activity pings) only relax 'offline'/'away'
  into 'idle'. They never touch 'online', 'idle' or 'waiting_for_agent'.
- An unassigned visitor that went offline is a closed AI-only session
  (is_active False). Background signals leave it closed; an explicit status
  change, a new message or a returning visit on a new session reopens it.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatdesk.core.config import SESSION_ACTIVITY_WINDOW_MINUTES
from chatdesk.core.exceptions import BadRequestError, VisitorNotFound
from chatdesk.models.agent import Agent
from chatdesk.models.message import MESSAGE_TYPES, VisitorMessage
from chatdesk.models.visitor import (
    Visitor, VisitorActivity, RELAXABLE_STATUSES, SETTABLE_STATUSES, WIDGET_STATUSES
)
from chatdesk.schemas.visitor import VisitorUpsert, message_payload, visitor_payload
from chatdesk.ws.notifier import Notifier

log = logging.getLogger("chatdesk.visitor_service")

# Profile/tracking fields merged from the widget when present and non-empty
MERGE_FIELDS = (
    "name", "email", "phone", "avatar", "current_page", "referrer", "device",
    "user_agent", "ip_address", "tags", "source", "medium", "campaign",
    "content", "term", "keyword", "search_engine", "landing_page",
)

NEW_VISITOR_DEFAULTS = {
    "name": "Anonymous Visitor",
    "referrer": "Direct",
    "source": "Direct",
    "medium": "none",
}


def _present(value: Any) -> bool:
    return value not in (None, "", [], {})


def _valid_location(location: Optional[Dict[str, Any]]) -> bool:
    """Geo lookups that failed come back as country 'Unknown'"""
    return bool(location) and location.get("country") not in (None, "", "Unknown")


def _activity_time(current: Optional[datetime], reported: Optional[datetime], now: datetime) -> datetime:
    """Client clocks only move last_activity forward, and never past the server clock"""
    seen_at = now
    if reported is not None:
        if reported.tzinfo is not None:
            reported = reported.astimezone(timezone.utc).replace(tzinfo=None)
        seen_at = min(reported, now)
    if current is not None and current > seen_at:
        return current
    return seen_at


def is_closed_session(visitor: Visitor) -> bool:
    return visitor.status == "offline" and visitor.assigned_agent_id is None and not visitor.is_active


class VisitorService:
    """Service for visitor session operations"""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    # ────────────────────────────────────────────
    # Lookups
    # ────────────────────────────────────────────

    def get_visitor(self, db: Session, tenant_id: str, visitor_id: str) -> Optional[Visitor]:
        return db.query(Visitor).filter(
            Visitor.id == visitor_id,
            Visitor.tenant_id == tenant_id
        ).first()

    def require_visitor(self, db: Session, tenant_id: str, visitor_id: str) -> Visitor:
        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            raise VisitorNotFound(visitor_id)
        return visitor

    def list_visitors(
        self,
        db: Session,
        tenant_id: str,
        status: Optional[str] = None,
        assigned_agent_id: Optional[int] = None,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Visitor], int]:
        query = db.query(Visitor).filter(Visitor.tenant_id == tenant_id)

        if status:
            query = query.filter(Visitor.status == status)
        if assigned_agent_id is not None:
            query = query.filter(Visitor.assigned_agent_id == assigned_agent_id)
        if active_only:
            query = query.filter(Visitor.is_active.is_(True))

        total = query.count()
        visitors = query.order_by(desc(Visitor.last_activity)).offset(skip).limit(limit).all()
        return visitors, total

    def get_messages(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        limit: int = 100
    ) -> List[VisitorMessage]:
        self.require_visitor(db, tenant_id, visitor_id)
        return db.query(VisitorMessage).filter(
            VisitorMessage.tenant_id == tenant_id,
            VisitorMessage.visitor_id == visitor_id
        ).order_by(VisitorMessage.created_at, VisitorMessage.id).limit(limit).all()

    # ────────────────────────────────────────────
    # Session tracking
    # ────────────────────────────────────────────

    def upsert_visitor(
        self,
        db: Session,
        tenant_id: str,
        data: VisitorUpsert,
        brand_id: Optional[int] = None
    ) -> Tuple[Visitor, bool]:
        """
        Create the visitor or merge the widget's latest data into it.

        Args:
            db: Database session
            tenant_id: Tenant identifier
            data: Widget payload
            brand_id: Brand for a newly created visitor

        Returns:
            Tuple of (visitor, created)
        """
        now = datetime.utcnow()
        visitor = self.get_visitor(db, tenant_id, data.visitor_id)

        if visitor is None:
            visitor = Visitor(
                id=data.visitor_id,
                tenant_id=tenant_id,
                session_id=data.session_id,
                status="idle",
                is_active=True,
                visits_count=1,
                messages_count=0,
                session_duration=0,
                last_activity=now,
                brand_id=brand_id,
                location=data.location if _valid_location(data.location) else {},
                meta_data=dict(data.extra) if data.extra else {},
            )
            for field in MERGE_FIELDS:
                value = getattr(data, field)
                if _present(value):
                    setattr(visitor, field, value)
                elif field in NEW_VISITOR_DEFAULTS:
                    setattr(visitor, field, NEW_VISITOR_DEFAULTS[field])

            db.add(visitor)
            db.commit()
            db.refresh(visitor)
            log.info(f"👤 New visitor {visitor.id} (tenant {tenant_id}, brand {brand_id})")
            return visitor, True

        new_session = data.session_id != visitor.session_id

        # Only assign fields that carry a value so untouched columns stay clean
        for field in MERGE_FIELDS:
            value = getattr(data, field)
            if _present(value) and getattr(visitor, field) != value:
                setattr(visitor, field, value)

        if _valid_location(data.location):
            visitor.location = data.location
        if data.extra:
            visitor.meta_data = {**(visitor.meta_data or {}), **data.extra}

        if data.is_returning and new_session:
            visitor.visits_count = (visitor.visits_count or 0) + 1

        if is_closed_session(visitor):
            if new_session:
                visitor.status = "idle"
                visitor.is_active = True
                log.info(f"🔁 Visitor {visitor.id} reopened a closed session")
        elif visitor.status in RELAXABLE_STATUSES:
            visitor.status = "idle"

        if new_session:
            visitor.session_id = data.session_id
        if brand_id and not visitor.brand_id:
            visitor.brand_id = brand_id
        visitor.last_activity = now

        db.commit()
        db.refresh(visitor)
        log.debug(f"Visitor {visitor.id} updated (status={visitor.status}, visits={visitor.visits_count})")
        return visitor, False

    def record_activity(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        page: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> Optional[Visitor]:
        """Heartbeat from the widget. Returns None when the visitor is unknown."""
        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            log.debug(f"Activity ping for unknown visitor {visitor_id}")
            return None

        now = datetime.utcnow()
        if page:
            visitor.current_page = page
        visitor.last_activity = _activity_time(visitor.last_activity, timestamp, now)
        if visitor.created_at:
            visitor.session_duration = max(0, int((now - visitor.created_at).total_seconds()))

        if visitor.status in RELAXABLE_STATUSES and not is_closed_session(visitor):
            visitor.status = "idle"

        db.commit()
        db.refresh(visitor)
        return visitor

    def set_status(self, db: Session, tenant_id: str, visitor_id: str, status: str) -> Optional[Visitor]:
        """Explicit presence change from the widget"""
        if status not in SETTABLE_STATUSES:
            raise BadRequestError(f"Invalid status. Must be one of: {', '.join(SETTABLE_STATUSES)}")

        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            return None

        previous = visitor.status
        going_offline = status == "offline" and previous != "offline"
        session_ended = going_offline and visitor.assigned_agent_id is None

        visitor.status = status
        visitor.last_activity = datetime.utcnow()
        if session_ended:
            visitor.is_active = False
        elif status != "offline":
            visitor.is_active = True

        db.commit()
        db.refresh(visitor)

        if going_offline:
            self.notifier.to_tenant(tenant_id, "visitor:leave", {
                "visitorId": visitor_id,
                "timestamp": visitor.last_activity,
            })
        if session_ended:
            log.info(f"🏁 AI-only session ended for visitor {visitor_id}")
            self.notifier.to_tenant(tenant_id, "visitor:session-ended", {
                "visitorId": visitor_id,
                "reason": "visitor_offline",
                "timestamp": visitor.last_activity,
            })
        return visitor

    def set_typing(self, db: Session, tenant_id: str, visitor_id: str, is_typing: bool) -> Optional[Visitor]:
        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            return None

        visitor.is_typing = is_typing
        visitor.last_activity = datetime.utcnow()
        db.commit()

        self.notifier.to_tenant(tenant_id, "visitor:typing", {
            "visitorId": visitor_id,
            "isTyping": is_typing,
        })
        return visitor

    # ────────────────────────────────────────────
    # Conversation
    # ────────────────────────────────────────────

    def record_message(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        text: Optional[str],
        message_type: str = "text",
        attachment: Optional[Dict[str, Any]] = None
    ) -> VisitorMessage:
        """Persist a visitor message and push it to the tenant's dashboards"""
        if message_type not in MESSAGE_TYPES or message_type in ("system", "ai_suggestion"):
            raise BadRequestError("Invalid message type")
        attachment = {k: v for k, v in (attachment or {}).items() if v is not None}
        if not text and not attachment.get("file_url"):
            raise BadRequestError("Message or file is required")

        visitor = self.require_visitor(db, tenant_id, visitor_id)

        message = VisitorMessage(
            tenant_id=tenant_id,
            visitor_id=visitor_id,
            sender_type="visitor",
            sender_name=visitor.name,
            message=text or attachment.get("file_name") or "",
            message_type=message_type,
            meta_data=attachment,
        )
        db.add(message)

        now = datetime.utcnow()
        visitor.messages_count = (visitor.messages_count or 0) + 1
        visitor.last_activity = now
        visitor.is_typing = False
        visitor.is_active = True
        # A visitor waiting in the hand-off queue stays there
        if visitor.status != "waiting_for_agent":
            visitor.status = "idle"

        db.commit()
        db.refresh(message)
        db.refresh(visitor)

        log.info(f"💬 Message from visitor {visitor_id} ({message_type})")

        self.notifier.to_tenant(tenant_id, "visitor:message", {
            "visitorId": visitor_id,
            "message": message_payload(message),
        })
        self.notifier.to_tenant(tenant_id, "visitor:update", visitor_payload(visitor))
        return message

    def send_agent_message(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        agent: Agent,
        text: str
    ) -> VisitorMessage:
        """Agent reply from the dashboard, pushed to the visitor's widget"""
        visitor = self.require_visitor(db, tenant_id, visitor_id)

        message = VisitorMessage(
            tenant_id=tenant_id,
            visitor_id=visitor_id,
            sender_type="agent",
            sender_id=agent.id,
            sender_name=agent.name,
            message=text,
            message_type="text",
            meta_data={},
        )
        db.add(message)
        visitor.last_activity = datetime.utcnow()
        db.commit()
        db.refresh(message)

        payload = message_payload(message)
        self.notifier.to_visitor(visitor_id, "agent:message", payload)
        self.notifier.to_tenant(tenant_id, "visitor:message", {"visitorId": visitor_id, "message": payload})
        return message

    def end_chat(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        rating: Optional[int] = None,
        feedback: Optional[str] = None
    ) -> Optional[Visitor]:
        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            return None

        previous_agent_id = visitor.assigned_agent_id
        now = datetime.utcnow()

        visitor.assigned_agent_id = None
        visitor.status = "offline"
        visitor.is_active = False
        visitor.is_typing = False
        visitor.last_activity = now
        if rating is not None or feedback:
            visitor.meta_data = {
                **(visitor.meta_data or {}),
                "rating": rating,
                "feedback": feedback,
                "rated_at": now.isoformat(),
            }
        db.commit()
        db.refresh(visitor)

        self._save_system_message(db, tenant_id, visitor_id, "Visitor ended the chat.", {
            "action": "end_chat",
            "previous_agent_id": previous_agent_id,
            "rating": rating,
        })

        payload = {"visitorId": visitor_id, "timestamp": now}
        self.notifier.to_visitor(visitor_id, "visitor:end-chat", payload)
        self.notifier.to_tenant(tenant_id, "visitor:end-chat", payload)
        if previous_agent_id:
            self.notifier.to_agent(previous_agent_id, "visitor:end-chat", payload)

        log.info(f"👋 Visitor {visitor_id} ended the chat (agent {previous_agent_id})")
        return visitor

    def session_status(self, db: Session, tenant_id: str, visitor_id: str) -> Dict[str, Any]:
        """
        Classify the visitor's conversation so the widget can restore it.

        - new: unknown visitor
        - active_with_agent: an agent is assigned and the visitor was active recently
        - ended_with_agent: an agent was assigned but the visitor went quiet
        - active_with_ai: everything else
        """
        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            return {"status": "new", "agent": None}

        window = timedelta(minutes=SESSION_ACTIVITY_WINDOW_MINUTES)
        recent = bool(visitor.last_activity) and datetime.utcnow() - visitor.last_activity < window

        agent = None
        if visitor.assigned_agent is not None:
            agent = visitor.assigned_agent.public_profile()

        if visitor.assigned_agent_id and recent:
            status = "active_with_agent"
        elif visitor.assigned_agent_id:
            status = "ended_with_agent"
        else:
            status = "active_with_ai"

        return {
            "status": status,
            "agent": agent,
            "visitorStatus": visitor.status,
            "lastActivity": visitor.last_activity,
        }

    def submit_rating(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        rating: int,
        feedback: Optional[str] = None
    ) -> Visitor:
        if rating is None or not 1 <= rating <= 5:
            raise BadRequestError("Rating must be between 1 and 5")

        visitor = self.require_visitor(db, tenant_id, visitor_id)
        now = datetime.utcnow()
        # Reassign so the JSON column is flagged dirty
        visitor.meta_data = {
            **(visitor.meta_data or {}),
            "rating": rating,
            "feedback": feedback,
            "rated_at": now.isoformat(),
        }
        db.commit()
        db.refresh(visitor)

        self.notifier.to_tenant(tenant_id, "visitor:rating-submitted", {
            "visitorId": visitor_id,
            "rating": rating,
            "feedback": feedback,
            "timestamp": now,
        })
        return visitor

    def set_widget_status(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        widget_status: str,
        timestamp: Optional[datetime] = None
    ) -> Optional[Visitor]:
        if widget_status not in WIDGET_STATUSES:
            raise BadRequestError(f"Invalid widget status. Must be one of: {', '.join(WIDGET_STATUSES)}")

        visitor = self.get_visitor(db, tenant_id, visitor_id)
        if not visitor:
            return None

        when = timestamp or datetime.utcnow()
        visitor.widget_status = widget_status
        visitor.last_widget_update = when
        db.commit()
        db.refresh(visitor)

        text = "Visitor minimized the chat window" if widget_status == "minimized" \
            else "Visitor reopened the chat window"
        self._save_system_message(db, tenant_id, visitor_id, text, {
            "action": "widget_status",
            "widget_status": widget_status,
        })

        self.notifier.to_tenant(tenant_id, "widget:status", {
            "visitorId": visitor_id,
            "status": widget_status,
            "timestamp": when,
        })
        return visitor

    def log_activity(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        activity_type: str,
        activity_data: Optional[Dict[str, Any]] = None,
        page_url: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> VisitorActivity:
        """Keep only the latest detailed activity per visitor"""
        visitor = self.require_visitor(db, tenant_id, visitor_id)

        activity = db.query(VisitorActivity).filter(
            VisitorActivity.tenant_id == tenant_id,
            VisitorActivity.visitor_id == visitor_id
        ).first()

        if activity is None:
            activity = VisitorActivity(tenant_id=tenant_id, visitor_id=visitor_id)
            db.add(activity)

        activity.session_id = visitor.session_id
        activity.activity_type = activity_type
        activity.activity_data = dict(activity_data or {})
        activity.page_url = page_url
        activity.timestamp = timestamp or datetime.utcnow()

        db.commit()
        db.refresh(activity)
        return activity

    # ────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────

    def _save_system_message(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        text: str,
        meta: Dict[str, Any]
    ) -> Optional[VisitorMessage]:
        """Audit trail write. Failures are logged and never fail the request."""
        try:
            message = VisitorMessage(
                tenant_id=tenant_id,
                visitor_id=visitor_id,
                sender_type="system",
                sender_name="System",
                message=text,
                message_type="system",
                meta_data={k: v for k, v in meta.items() if v is not None},
            )
            db.add(message)
            db.commit()
            return message
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"❌ Failed to save system message for {visitor_id}: {e}")
            return None
