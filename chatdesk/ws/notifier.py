# chatdesk/ws/notifier.py
"""
Realtime notifier handed to every service.

Three logical channels:
- tenant: every agent dashboard of the tenant
- visitor: the widget instance of one visitor
- agent: one agent's personal alerts

Emission is fire-and-forget. A channel with no subscriber drops the event;
dashboards re-fetch state over the REST API after reconnecting.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

from chatdesk.ws.manager import RoomConnectionManager, ws_manager, tenant_room, visitor_room, agent_room

log = logging.getLogger("chatdesk.notifier")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class Notifier:
    """Base notifier. Subclasses implement _emit(room, payload)."""

    def to_tenant(self, tenant_id, event: str, data: Dict[str, Any]) -> None:
        self._safe_emit(tenant_room(tenant_id), event, data)

    def to_visitor(self, visitor_id, event: str, data: Dict[str, Any]) -> None:
        self._safe_emit(visitor_room(visitor_id), event, data)

    def to_agent(self, agent_id, event: str, data: Dict[str, Any]) -> None:
        self._safe_emit(agent_room(agent_id), event, data)

    def _safe_emit(self, room: str, event: str, data: Dict[str, Any]) -> None:
        payload = {"event": event, "data": _jsonable(data)}
        try:
            self._emit(room, payload)
        except Exception:
            # Never fail the request because a broadcast failed
            log.exception(f"❌ Failed to emit {event} to {room}")

    def _emit(self, room: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class WebSocketNotifier(Notifier):
    def __init__(self, manager: RoomConnectionManager = ws_manager):
        self.manager = manager

    def _emit(self, room: str, payload: Dict[str, Any]) -> None:
        log.debug(f"📢 {payload['event']} -> {room}")
        self.manager.send_to_room_sync(room, payload)


class RecordingNotifier(Notifier):
    """Keeps emitted events in memory. Used by tests and local scripts."""

    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    def _emit(self, room: str, payload: Dict[str, Any]) -> None:
        self.events.append((room, payload["event"], payload["data"]))

    def named(self, event: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(room, data) for room, name, data in self.events if name == event]

    def rooms_for(self, event: str) -> List[str]:
        return [room for room, _ in self.named(event)]

    def clear(self) -> None:
        self.events.clear()
