"""
Fanout Hub — pushes LiveEvents to connected client sessions.

Two delivery scopes:
  global  — every connected session (dashboard-wide entities)
  room    — only sessions that joined the named room (patient note
            threads, typing indicators, per-user notification feeds)

Delivery is at-most-once and best-effort.  There is no queue, retry or
replay: a session that is offline when an event is published never sees
it and must re-fetch state when it reconnects.  The store is always the
source of truth.

The hub is created once at startup and handed to every component that
publishes (see mindtrack.setup).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from fastapi import WebSocket
from pydantic import BaseModel

from mindtrack.realtime.events import LiveEvent

logger = logging.getLogger("realtime.hub")


class ClientSession(ABC):
    """One connected client.  Subclasses wrap a concrete transport."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.user_id: Optional[str] = None

    @abstractmethod
    async def send_json(self, data: dict[str, Any]) -> None:
        """Push one message.  May raise if the transport is gone."""


class WebSocketSession(ClientSession):
    """A FastAPI/Starlette WebSocket connection."""

    def __init__(self, websocket: WebSocket, session_id: str) -> None:
        super().__init__(session_id)
        self.websocket = websocket

    async def send_json(self, data: dict[str, Any]) -> None:
        await self.websocket.send_json(data)


class FanoutHub:
    """Registry of connected sessions and the rooms they joined."""

    def __init__(self) -> None:
        self._sessions: dict[str, ClientSession] = {}
        self._rooms: dict[str, set[str]] = {}

    # ── Connections ──

    def connect(self, session: ClientSession) -> None:
        self._sessions[session.session_id] = session
        logger.info(
            "Session connected: %s (total=%d)", session.session_id, len(self._sessions)
        )

    def disconnect(self, session_id: str) -> None:
        """Forget the session and implicitly leave every room it joined."""
        session = self._sessions.pop(session_id, None)
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(session_id)
            if not members:
                del self._rooms[room]
        if session is not None:
            logger.info(
                "Session disconnected: %s (user=%s, total=%d)",
                session_id, session.user_id, len(self._sessions),
            )

    def get_session(self, session_id: str) -> ClientSession | None:
        return self._sessions.get(session_id)

    @property
    def connected_count(self) -> int:
        return len(self._sessions)

    # ── Rooms ──

    def join(self, session_id: str, room: str) -> bool:
        """Add a session to a room.  Joining twice is a no-op."""
        if session_id not in self._sessions:
            logger.warning("Join ignored: unknown session %s", session_id)
            return False
        self._rooms.setdefault(room, set()).add(session_id)
        return True

    def leave(self, session_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(session_id)
        if not members:
            del self._rooms[room]

    def room_members(self, room: str) -> list[str]:
        return sorted(self._rooms.get(room, ()))

    def rooms_of(self, session_id: str) -> list[str]:
        return sorted(r for r, members in self._rooms.items() if session_id in members)

    # ── Publishing ──

    async def publish(
        self,
        event_name: str,
        payload: dict[str, Any] | BaseModel | None = None,
        room: str | None = None,
        *,
        exclude: str | None = None,
    ) -> int:
        """
        Deliver ``event_name`` to the global scope (``room=None``) or to one
        room.  Never raises; returns how many sessions received the event.
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        name = event_name.value if isinstance(event_name, Enum) else event_name
        try:
            event = LiveEvent(event=name, payload=payload or {}, room=room)
            message = event.to_wire()
        except Exception as exc:
            logger.error("Cannot serialise live event %s: %s", name, exc)
            return 0

        if room is None:
            targets = list(self._sessions)
        else:
            targets = list(self._rooms.get(room, ()))

        delivered = 0
        for session_id in targets:
            if session_id == exclude:
                continue
            session = self._sessions.get(session_id)
            if session is None:
                continue
            try:
                await session.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Dropping session %s after failed send of %s: %s",
                    session_id, event.event, exc,
                )
                self.disconnect(session_id)

        logger.debug(
            "Published %s to %s: %d/%d sessions",
            event.event, room or "global", delivered, len(targets),
        )
        return delivered
