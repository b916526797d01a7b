# chatdesk/services/handoff_service.py
"""
Hand-off coordinator - moves conversations from the AI to human agents.

Three paths:
- AI detected transfer intent: assign a brand agent (transfer_chat_to_agent)
- Visitor asked for a human: move into the tenant-wide pool (request_agent)
- Agent claims a waiting visitor (accept_chat)

Every hand-off is recorded as a HandoffEvent. Audit writes never fail the
hand-off itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatdesk.core.exceptions import BadRequestError, VisitorNotFound
from chatdesk.core.logging_config import get_handoff_logger
from chatdesk.models.agent import Agent, Brand, BrandAgent
from chatdesk.models.handoff import HandoffEvent
from chatdesk.models.message import VisitorMessage
from chatdesk.models.visitor import Visitor
from chatdesk.schemas.visitor import visitor_payload
from chatdesk.services.agent_selector import AgentSelector, RecentActivitySelector
from chatdesk.ws.notifier import Notifier

log = get_handoff_logger()

NO_AGENTS_MESSAGE = "No available agents at the moment. Please try again later."
NO_ONLINE_AGENTS_MESSAGE = "No agents currently available"
POOL_TRANSFER_MESSAGE = "I'm transferring you to a human agent. An agent will be with you shortly."


@dataclass
class TransferResult:
    success: bool
    message: str
    agent: Optional[Dict[str, Any]] = None


class HandoffCoordinator:
    """Service for hand-off operations"""

    def __init__(self, notifier: Notifier, selector: Optional[AgentSelector] = None):
        self.notifier = notifier
        self.selector = selector or RecentActivitySelector()

    # ────────────────────────────────────────────
    # Agent lookup
    # ────────────────────────────────────────────

    def brand_candidates(self, db: Session, tenant_id: str, brand_id: int) -> List[Agent]:
        """Active agents of the tenant with an active assignment to the brand, in roster order"""
        rows = db.query(BrandAgent).join(
            Agent, BrandAgent.agent_id == Agent.id
        ).filter(
            BrandAgent.brand_id == brand_id,
            BrandAgent.status == "active",
            Agent.tenant_id == tenant_id,
            Agent.status == "active"
        ).order_by(BrandAgent.id).all()

        return [row.agent for row in rows]

    def find_available_agent(
        self,
        db: Session,
        tenant_id: str,
        brand_id: int,
        now: Optional[datetime] = None
    ) -> Optional[Agent]:
        """Returns None only when the brand has no active agent assignments"""
        candidates = self.brand_candidates(db, tenant_id, brand_id)
        if not candidates:
            log.info(f"No agents assigned to brand {brand_id} (tenant {tenant_id})")
            return None

        agent = self.selector.select(db, tenant_id, candidates, now=now)
        log.debug(
            f"Selected agent {agent.id if agent else None} from {len(candidates)} "
            f"candidates using '{self.selector.name}'"
        )
        return agent

    def online_agents(self, db: Session, tenant_id: str) -> List[Agent]:
        return db.query(Agent).filter(
            Agent.tenant_id == tenant_id,
            Agent.status == "active",
            Agent.presence_status == "online"
        ).all()

    # ────────────────────────────────────────────
    # Hand-off paths
    # ────────────────────────────────────────────

    def transfer_chat_to_agent(
        self,
        db: Session,
        visitor_id: str,
        tenant_id: str,
        brand_id: int,
        reason: Optional[str] = None
    ) -> TransferResult:
        """
        Assign the visitor to an agent of the brand.

        The read of agent state and the visitor write are separate steps;
        two concurrent transfers of the same visitor both succeed and the
        last write wins.
        """
        visitor = self._get_visitor(db, visitor_id, tenant_id)
        if not visitor:
            log.warning(f"Transfer requested for unknown visitor {visitor_id} (tenant {tenant_id})")
            return TransferResult(success=False, message="Visitor not found")

        agent = self.find_available_agent(db, tenant_id, brand_id)
        if not agent:
            log.warning(f"⚠️ No agent available for visitor {visitor_id} (tenant {tenant_id}, brand {brand_id})")
            return TransferResult(success=False, message=NO_AGENTS_MESSAGE)

        previous_agent_id = visitor.assigned_agent_id
        visitor.assigned_agent_id = agent.id
        visitor.status = "waiting_for_agent"
        visitor.is_active = True
        visitor.last_activity = datetime.utcnow()
        db.commit()
        db.refresh(visitor)

        log.info(f"🔀 Visitor {visitor_id} transferred to agent {agent.id} ({agent.name}) for brand {brand_id}")

        self._record_event(
            db, tenant_id, visitor_id, brand_id, "ai_to_agent",
            from_agent_id=previous_agent_id, to_agent_id=agent.id, reason=reason
        )

        return TransferResult(
            success=True,
            message=f"Chat transferred to {agent.name}",
            agent=agent.public_profile()
        )

    def request_agent(
        self,
        db: Session,
        visitor_id: str,
        tenant_id: str,
        reason: Optional[str] = None
    ) -> TransferResult:
        """
        Visitor explicitly asked for a human.
        Moves the visitor into the tenant-wide pool when any agent is online.
        """
        visitor = self._get_visitor(db, visitor_id, tenant_id)
        if not visitor:
            raise VisitorNotFound(visitor_id)

        online = self.online_agents(db, tenant_id)
        if not online:
            log.info(f"Visitor {visitor_id} requested an agent but none are online (tenant {tenant_id})")
            return TransferResult(success=False, message=NO_ONLINE_AGENTS_MESSAGE)

        previous_agent_id = visitor.assigned_agent_id
        visitor.assigned_agent_id = None
        visitor.status = "waiting_for_agent"
        visitor.is_active = True
        visitor.last_activity = datetime.utcnow()
        db.commit()
        db.refresh(visitor)

        log.info(f"🙋 Visitor {visitor_id} moved to transfer pool ({len(online)} agents online)")

        self._save_system_message(
            db, tenant_id, visitor_id, POOL_TRANSFER_MESSAGE,
            {"transfer_type": "visitor_request", "reason": reason}
        )
        self._record_event(
            db, tenant_id, visitor_id, visitor.brand_id, "visitor_request",
            from_agent_id=previous_agent_id, reason=reason
        )

        payload = {
            "visitorId": visitor_id,
            "reason": reason,
            "message": POOL_TRANSFER_MESSAGE,
            "timestamp": datetime.utcnow(),
        }
        self.notifier.to_visitor(visitor_id, "visitor:transfer", payload)
        self.notifier.to_tenant(tenant_id, "visitor:transfer", payload)
        self.notifier.to_tenant(tenant_id, "visitor:update", visitor_payload(visitor))

        return TransferResult(success=True, message=POOL_TRANSFER_MESSAGE)

    def accept_chat(self, db: Session, visitor_id: str, tenant_id: str, agent: Agent) -> Visitor:
        """Agent claims a visitor from the pool (or confirms an AI assignment)"""
        visitor = self._get_visitor(db, visitor_id, tenant_id)
        if not visitor:
            raise VisitorNotFound(visitor_id)

        if visitor.assigned_agent_id not in (None, agent.id):
            raise BadRequestError("Chat is already assigned to another agent")

        previous_agent_id = visitor.assigned_agent_id
        visitor.assigned_agent_id = agent.id
        visitor.status = "online"
        visitor.is_active = True
        visitor.last_activity = datetime.utcnow()
        db.commit()
        db.refresh(visitor)

        log.info(f"🤝 Agent {agent.id} ({agent.name}) accepted visitor {visitor_id}")

        self._save_system_message(
            db, tenant_id, visitor_id, f"{agent.name} joined the chat",
            {"transfer_type": "agent_accept", "agent_id": agent.id, "agent_name": agent.name}
        )
        self._record_event(
            db, tenant_id, visitor_id, visitor.brand_id, "agent_accept",
            from_agent_id=previous_agent_id, to_agent_id=agent.id
        )

        self.notifier.to_visitor(visitor_id, "agent:joined", {
            "visitorId": visitor_id,
            "agent": agent.public_profile(),
            "timestamp": datetime.utcnow(),
        })
        self.notifier.to_tenant(tenant_id, "visitor:update", visitor_payload(visitor))
        return visitor

    # ────────────────────────────────────────────
    # Reporting
    # ────────────────────────────────────────────

    def transfer_stats(
        self,
        db: Session,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Hand-offs grouped by type, agent and brand"""
        query = db.query(HandoffEvent).filter(HandoffEvent.tenant_id == tenant_id)
        if start:
            query = query.filter(HandoffEvent.created_at >= start)
        if end:
            query = query.filter(HandoffEvent.created_at <= end)

        total = query.count()

        by_type = dict(
            query.with_entities(HandoffEvent.handoff_type, func.count(HandoffEvent.id))
            .group_by(HandoffEvent.handoff_type).all()
        )

        agent_rows = query.join(
            Agent, HandoffEvent.to_agent_id == Agent.id
        ).with_entities(
            Agent.id, Agent.name, func.count(HandoffEvent.id)
        ).group_by(Agent.id, Agent.name).all()

        brand_rows = query.join(
            Brand, HandoffEvent.brand_id == Brand.id
        ).with_entities(
            Brand.id, Brand.name, func.count(HandoffEvent.id)
        ).group_by(Brand.id, Brand.name).all()

        return {
            "total": total,
            "by_type": by_type,
            "by_agent": [
                {"agent_id": agent_id, "agent_name": name, "count": count}
                for agent_id, name, count in agent_rows
            ],
            "by_brand": [
                {"brand_id": brand_id, "brand_name": name, "count": count}
                for brand_id, name, count in brand_rows
            ],
        }

    # ────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────

    def _get_visitor(self, db: Session, visitor_id: str, tenant_id: str) -> Optional[Visitor]:
        return db.query(Visitor).filter(
            Visitor.id == visitor_id,
            Visitor.tenant_id == tenant_id
        ).first()

    def _record_event(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        brand_id: Optional[int],
        handoff_type: str,
        from_agent_id: Optional[int] = None,
        to_agent_id: Optional[int] = None,
        reason: Optional[str] = None
    ) -> Optional[HandoffEvent]:
        try:
            event = HandoffEvent(
                tenant_id=tenant_id,
                visitor_id=visitor_id,
                brand_id=brand_id,
                from_agent_id=from_agent_id,
                to_agent_id=to_agent_id,
                handoff_type=handoff_type,
                reason=reason
            )
            db.add(event)
            db.commit()
            return event
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"❌ Failed to record {handoff_type} hand-off for {visitor_id}: {e}")
            return None

    def _save_system_message(
        self,
        db: Session,
        tenant_id: str,
        visitor_id: str,
        text: str,
        meta: Dict[str, Any]
    ) -> Optional[VisitorMessage]:
        try:
            message = VisitorMessage(
                tenant_id=tenant_id,
                visitor_id=visitor_id,
                sender_type="system",
                sender_name="System",
                message=text,
                message_type="system",
                meta_data={k: v for k, v in meta.items() if v is not None}
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            return message
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"❌ Failed to save system message for {visitor_id}: {e}")
            return None
