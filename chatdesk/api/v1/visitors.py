# chatdesk/api/v1/visitors.py
"""Agent dashboard endpoints for visitors, hand-offs and agent presence"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from chatdesk.api.deps import get_current_agent
from chatdesk.core.exceptions import BadRequestError
from chatdesk.db.session import get_db
from chatdesk.models.agent import AGENT_PRESENCE_STATUSES, Agent
from chatdesk.schemas.visitor import (
    AgentMessageCreate, PresenceUpdate, message_payload, visitor_payload,
)
from chatdesk.services import get_handoff_coordinator, get_notifier, get_visitor_service
from chatdesk.services.handoff_service import HandoffCoordinator
from chatdesk.services.visitor_service import VisitorService
from chatdesk.ws.notifier import Notifier

log = logging.getLogger("chatdesk.api.visitors")

router = APIRouter()


# ────────────────────────────────────────────
# Visitors
# ────────────────────────────────────────────

@router.get("/visitors")
def list_visitors(
    status: Optional[str] = None,
    mine: bool = False,
    active_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    service: VisitorService = Depends(get_visitor_service)
):
    """List visitors of the agent's tenant, most recently active first"""
    visitors, total = service.list_visitors(
        db, agent.tenant_id,
        status=status,
        assigned_agent_id=agent.id if mine else None,
        active_only=active_only,
        skip=skip,
        limit=limit
    )
    return {
        "success": True,
        "data": [visitor_payload(v) for v in visitors],
        "total": total,
        "skip": skip,
        "limit": limit,
    }


@router.get("/visitors/{visitor_id}")
def get_visitor(
    visitor_id: str,
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    service: VisitorService = Depends(get_visitor_service)
):
    visitor = service.require_visitor(db, agent.tenant_id, visitor_id)
    return {"success": True, "data": visitor_payload(visitor)}


@router.get("/visitors/{visitor_id}/messages")
def get_visitor_messages(
    visitor_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    service: VisitorService = Depends(get_visitor_service)
):
    messages = service.get_messages(db, agent.tenant_id, visitor_id, limit=limit)
    return {"success": True, "data": [message_payload(m) for m in messages]}


@router.post("/visitors/{visitor_id}/messages")
def send_agent_message(
    visitor_id: str,
    data: AgentMessageCreate,
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    service: VisitorService = Depends(get_visitor_service)
):
    """Agent reply, delivered to the visitor's widget"""
    message = service.send_agent_message(db, agent.tenant_id, visitor_id, agent, data.message)
    return {"success": True, "data": message_payload(message)}


@router.post("/visitors/{visitor_id}/accept")
def accept_chat(
    visitor_id: str,
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    coordinator: HandoffCoordinator = Depends(get_handoff_coordinator)
):
    """Claim a waiting visitor"""
    visitor = coordinator.accept_chat(db, visitor_id, agent.tenant_id, agent)
    return {"success": True, "message": "Chat accepted", "data": visitor_payload(visitor)}


# ────────────────────────────────────────────
# Agents & hand-offs
# ────────────────────────────────────────────

@router.put("/agents/me/presence")
def update_presence(
    data: PresenceUpdate,
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    notifier: Notifier = Depends(get_notifier)
):
    if data.presence_status not in AGENT_PRESENCE_STATUSES:
        raise BadRequestError(f"Invalid presence status. Must be one of: {', '.join(AGENT_PRESENCE_STATUSES)}")

    agent.presence_status = data.presence_status
    if data.presence_status == "online":
        agent.last_login = datetime.utcnow()
    db.commit()
    db.refresh(agent)

    log.info(f"Agent {agent.id} is now {agent.presence_status}")
    notifier.to_tenant(agent.tenant_id, "agent:presence", {
        "agentId": agent.id,
        "presenceStatus": agent.presence_status,
    })
    return {"success": True, "data": {"id": agent.id, "presenceStatus": agent.presence_status}}


@router.get("/handoffs/stats")
def handoff_stats(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
    coordinator: HandoffCoordinator = Depends(get_handoff_coordinator)
):
    """Hand-off totals by agent and brand"""
    return {"success": True, "data": coordinator.transfer_stats(db, agent.tenant_id, start=start, end=end)}
