# chatdesk/services/agent_selector.py
"""
Agent selection strategies used by the hand-off coordinator.

Candidates are the active agents assigned to a brand, in roster order.
A strategy picks one of them (or None when there are no candidates).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from chatdesk.core.config import AGENT_RECENT_LOGIN_MINUTES
from chatdesk.models.agent import Agent
from chatdesk.models.visitor import Visitor

log = logging.getLogger("chatdesk.agent_selector")

# Visitor statuses that count as an open conversation for an agent
OPEN_CHAT_STATUSES = ("waiting_for_agent", "online", "idle")


def _login_key(agent: Agent) -> datetime:
    return agent.last_login or datetime.min


class AgentSelector:
    """Base strategy"""

    name = "base"

    def __init__(self, recent_window_minutes: int = AGENT_RECENT_LOGIN_MINUTES):
        self.recent_window = timedelta(minutes=recent_window_minutes)

    def is_recently_seen(self, agent: Agent, now: datetime) -> bool:
        """Online right now, or logged in within the recent window"""
        if agent.presence_status == "online":
            return True
        return bool(agent.last_login) and now - agent.last_login < self.recent_window

    def select(
        self,
        db: Session,
        tenant_id: str,
        candidates: List[Agent],
        now: Optional[datetime] = None,
    ) -> Optional[Agent]:
        raise NotImplementedError


class RecentActivitySelector(AgentSelector):
    """
    Prefer recently seen agents, most recent login first.
    Falls back to the first candidate when nobody was seen recently.
    """

    name = "recent"

    def select(self, db, tenant_id, candidates, now=None):
        if not candidates:
            return None

        now = now or datetime.utcnow()
        recent = [a for a in candidates if self.is_recently_seen(a, now)]
        if not recent:
            log.debug(f"No recently seen agent among {len(candidates)}, using first candidate")
            return candidates[0]

        # sorted() is stable, so equal logins keep roster order
        return sorted(recent, key=_login_key, reverse=True)[0]


class LeastBusySelector(AgentSelector):
    """
    Among recently seen agents, pick the one with the fewest open chats.
    Ties are broken by most recent login.
    """

    name = "least_busy"

    def open_chat_counts(self, db: Session, tenant_id: str, agent_ids: List[int]) -> Dict[int, int]:
        if not agent_ids:
            return {}

        rows = db.query(
            Visitor.assigned_agent_id,
            func.count(Visitor.id)
        ).filter(
            Visitor.tenant_id == tenant_id,
            Visitor.assigned_agent_id.in_(agent_ids),
            Visitor.status.in_(OPEN_CHAT_STATUSES),
            Visitor.is_active.is_(True)
        ).group_by(Visitor.assigned_agent_id).all()

        return {agent_id: count for agent_id, count in rows}

    def select(self, db, tenant_id, candidates, now=None):
        if not candidates:
            return None

        now = now or datetime.utcnow()
        pool = [a for a in candidates if self.is_recently_seen(a, now)]
        if not pool:
            return candidates[0]

        counts = self.open_chat_counts(db, tenant_id, [a.id for a in pool])
        pool = sorted(pool, key=_login_key, reverse=True)
        return min(pool, key=lambda a: counts.get(a.id, 0))


SELECTORS = {
    RecentActivitySelector.name: RecentActivitySelector,
    LeastBusySelector.name: LeastBusySelector,
}


def get_selector(strategy: str = "recent", **kwargs) -> AgentSelector:
    """Build a selector by name. Unknown names fall back to 'recent'."""
    selector_cls = SELECTORS.get((strategy or "").lower())
    if selector_cls is None:
        log.warning(f"⚠️ Unknown agent selection strategy '{strategy}', using 'recent'")
        selector_cls = RecentActivitySelector
    return selector_cls(**kwargs)
