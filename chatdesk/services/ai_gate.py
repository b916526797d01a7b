# chatdesk/services/ai_gate.py
"""
AI response gate - decides whether a visitor message is answered by the AI
or handed off to a human agent of the visitor's brand.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatdesk.core.exceptions import AIUnavailableError, BadRequestError, VisitorNotFound
from chatdesk.models.message import VisitorMessage
from chatdesk.models.settings import WidgetSetting
from chatdesk.models.visitor import Visitor
from chatdesk.schemas.visitor import visitor_payload
from chatdesk.services.ai_engine import AIEngine
from chatdesk.services.handoff_service import HandoffCoordinator
from chatdesk.ws.notifier import Notifier

log = logging.getLogger("chatdesk.ai_gate")

AI_DISABLED_MESSAGE = "AI chat is not enabled for this tenant"
AI_NOT_CONFIGURED_MESSAGE = "AI not configured. Please contact administrator."
NO_BRAND_MESSAGE = "Unable to transfer chat. Visitor brand not found."


class AIResponseGate:
    """Runs one visitor message through the AI or the hand-off path"""

    def __init__(self, engine: AIEngine, coordinator: HandoffCoordinator, notifier: Notifier):
        self.engine = engine
        self.coordinator = coordinator
        self.notifier = notifier

    def get_widget_settings(self, db: Session, tenant_id: str) -> Optional[WidgetSetting]:
        return db.query(WidgetSetting).filter(WidgetSetting.tenant_id == tenant_id).first()

    async def handle_message(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        message: str,
        context: str = ""
    ) -> Dict[str, Any]:
        """
        Preconditions, in order: AI enabled for the tenant, AI credential
        configured, visitor exists.

        Returns:
            Reply data for the widget
        """
        widget_settings = self.get_widget_settings(db, tenant_id)
        if not widget_settings or not widget_settings.ai_enabled:
            raise AIUnavailableError(AI_DISABLED_MESSAGE)

        if not self.engine.has_credential(db):
            raise AIUnavailableError(AI_NOT_CONFIGURED_MESSAGE)

        visitor = db.query(Visitor).filter(
            Visitor.id == visitor_id,
            Visitor.tenant_id == tenant_id
        ).first()
        if not visitor:
            raise VisitorNotFound(visitor_id)

        reply = await self.engine.generate_response(
            db, message, context,
            tenant_id=tenant_id,
            brand_id=visitor.brand_id,
            extra_keywords=widget_settings.auto_transfer_keywords or []
        )

        if reply.is_transfer_request:
            return self._hand_off(db, tenant_id, visitor, message, reply)

        saved = self._save_message(db, tenant_id, visitor_id, VisitorMessage(
            tenant_id=tenant_id,
            visitor_id=visitor_id,
            sender_type="ai",
            sender_name="AI Assistant",
            message=reply.response,
            message_type="text",
            meta_data={
                "confidence": reply.confidence,
                "tokens_used": reply.tokens_used,
                "original_message": message,
            },
        ))

        self.notifier.to_tenant(tenant_id, "ai:response", {
            "visitorId": visitor_id,
            "message": reply.response,
            "messageId": saved.id if saved else None,
            "confidence": reply.confidence,
            "timestamp": datetime.utcnow(),
        })

        return {
            "response": reply.response,
            "confidence": reply.confidence,
            "tokensUsed": reply.tokens_used,
            "isTransferRequest": False,
        }

    def _hand_off(self, db: Session, tenant_id: str, visitor: Visitor, message: str, reply) -> Dict[str, Any]:
        visitor_id = visitor.id
        if not visitor.brand_id:
            log.warning(f"⚠️ Cannot transfer visitor {visitor_id}: no brand")
            raise BadRequestError(NO_BRAND_MESSAGE)

        brand_id = visitor.brand_id
        result = self.coordinator.transfer_chat_to_agent(
            db, visitor_id, tenant_id, brand_id, reason=message
        )

        if not result.success:
            return {
                "response": result.message,
                "confidence": reply.confidence,
                "tokensUsed": 0,
                "isTransferRequest": True,
                "transferFailed": True,
            }

        agent = result.agent
        self._save_message(db, tenant_id, visitor_id, VisitorMessage(
            tenant_id=tenant_id,
            visitor_id=visitor_id,
            sender_type="system",
            sender_name="System",
            message=f"AI transferred this chat to agent {agent['name']}",
            message_type="system",
            meta_data={
                "transfer_type": "ai_to_agent",
                "agent_id": agent["id"],
                "agent_name": agent["name"],
            },
        ))

        now = datetime.utcnow()
        db.refresh(visitor)
        self.notifier.to_agent(agent["id"], "agent:assigned", {
            "visitorId": visitor_id,
            "visitor": visitor_payload(visitor),
            "message": message,
            "timestamp": now,
        })
        transfer = {
            "visitorId": visitor_id,
            "agent": agent,
            "transferType": "ai_to_agent",
            "timestamp": now,
        }
        self.notifier.to_tenant(tenant_id, "visitor:transfer", transfer)
        self.notifier.to_visitor(visitor_id, "visitor:transfer", transfer)
        self.notifier.to_tenant(tenant_id, "visitor:update", visitor_payload(visitor))

        return {
            "response": reply.response,
            "confidence": reply.confidence,
            "tokensUsed": 0,
            "isTransferRequest": True,
            "transferSuccess": True,
            "agent": agent,
        }

    def _save_message(self, db: Session, tenant_id: str, visitor_id: str, message: VisitorMessage) -> Optional[VisitorMessage]:
        """Conversation log write. Failures are logged and the reply still goes out."""
        try:
            db.add(message)
            db.commit()
            db.refresh(message)
            return message
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"❌ Failed to save {message.sender_type} message for {visitor_id} (tenant {tenant_id}): {e}")
            return None
