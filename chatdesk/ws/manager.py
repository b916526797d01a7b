# chatdesk/ws/manager.py
"""
Connection manager for room-based WebSocket broadcasting.

Rooms are plain strings: "tenant:<id>", "visitor:<id>", "agent:<id>".

Usage:
- In FastAPI route: await ws_manager.connect(room, ws) / ws_manager.disconnect(room, ws)
- From async code: await ws_manager.send_to_room(room, payload_dict)
- From sync code (route handlers running in the threadpool): ws_manager.send_to_room_sync(room, payload_dict)
"""
from __future__ import annotations

import logging
import asyncio
import threading
from typing import Dict, Set, Optional

import anyio
from fastapi import WebSocket

log = logging.getLogger("chatdesk.ws")


def tenant_room(tenant_id) -> str:
    return f"tenant:{tenant_id}"


def visitor_room(visitor_id) -> str:
    return f"visitor:{visitor_id}"


def agent_room(agent_id) -> str:
    return f"agent:{agent_id}"


class RoomConnectionManager:
    def __init__(self) -> None:
        # Map room -> set of WebSocket connections
        self.active: Dict[str, Set[WebSocket]] = {}

    async def connect(self, room: str, websocket: WebSocket) -> None:
        """Accept and register a websocket under a room."""
        await websocket.accept()
        self.active.setdefault(room, set()).add(websocket)
        log.info("WS connected: room=%s total=%d", room, self.connection_count(room))

    def disconnect(self, room: str, websocket: WebSocket) -> None:
        """Unregister a websocket from a room."""
        conns = self.active.get(room)
        if conns is not None:
            conns.discard(websocket)
            if not conns:
                # cleanup empty room
                self.active.pop(room, None)
        log.info("WS disconnected: room=%s total=%d", room, self.connection_count(room))

    async def send_to_room(self, room: str, message_data: dict) -> int:
        """Async: send JSON to every socket in a room. Returns number of successful sends."""
        connections = list(self.active.get(room, set()))

        if not connections:
            log.debug("No WebSocket connections in room %s, dropping %s", room, message_data.get("event"))
            return 0

        stale: Set[WebSocket] = set()
        sent_count = 0
        for ws in connections:
            try:
                await ws.send_json(message_data)
                sent_count += 1
            except Exception as e:
                # mark stale; we will remove after loop
                log.warning(f"⚠️ WS send failed, marking stale: {e}")
                stale.add(ws)

        log.debug(f"Sent {message_data.get('event')} to {sent_count}/{len(connections)} clients in {room}")

        # remove stale connections
        if stale:
            alive = self.active.get(room, set())
            for ws in stale:
                alive.discard(ws)
            if not alive:
                self.active.pop(room, None)
            log.info(f"🧹 Removed {len(stale)} stale connections from {room}")

        return sent_count

    def connection_count(self, room: Optional[str] = None) -> int:
        if room is None:
            return sum(len(s) for s in self.active.values())
        return len(self.active.get(room, set()))

    def send_to_room_sync(self, room: str, message_data: dict) -> None:
        """
        Sync-safe helper to dispatch an async send from non-async contexts.

        Strategy:
        - Try anyio.from_thread.run to hop into the running loop (works from a threadpool worker)
        - Else, if we're on a running loop thread, create_task
        - Else, run the coroutine in a new daemon thread to avoid blocking
        """
        if not self.active.get(room):
            log.debug("No WebSocket connections in room %s, dropping %s", room, message_data.get("event"))
            return

        try:
            anyio.from_thread.run(self.send_to_room, room, message_data)
            return
        except RuntimeError:
            # Not in a worker thread bound to an event loop; fallback below
            pass

        try:
            loop = asyncio.get_running_loop()
            loop.create_task(self.send_to_room(room, message_data))
            return
        except RuntimeError:
            # No running loop in this thread
            pass

        def _runner():
            try:
                asyncio.run(self.send_to_room(room, message_data))
            except Exception:
                log.exception(f"❌ Background send to {room} failed")

        threading.Thread(target=_runner, daemon=True).start()


# Singleton manager instance
ws_manager = RoomConnectionManager()
