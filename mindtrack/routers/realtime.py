"""
Real-time WebSocket endpoint — one FanoutHub session per connection.

Client → server messages (JSON, ``type`` selects the action):
  {"type": "authenticate", "userId": "..."}              join user_<id>
  {"type": "join_patient_room", "patientId": "..."}
  {"type": "leave_patient_room", "patientId": "..."}
  {"type": "typing_start", "patientId", "userId", "userName"}
  {"type": "typing_stop",  "patientId", "userId", "userName"}
  {"type": "ping"}                                        answered with pong

Server → client messages are LiveEvent envelopes.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mindtrack.realtime.events import LiveEvent, RealtimeEvent, patient_room, user_room
from mindtrack.realtime.hub import ClientSession, FanoutHub, WebSocketSession

logger = logging.getLogger("realtime.ws")

router = APIRouter()

_TYPING_EVENTS = {
    "typing_start": RealtimeEvent.USER_TYPING_START,
    "typing_stop": RealtimeEvent.USER_TYPING_STOP,
}


async def handle_client_message(
    hub: FanoutHub, session: ClientSession, message: Any
) -> None:
    """Apply one client message to the hub."""
    if not isinstance(message, dict):
        logger.warning("Ignoring non-object message from %s", session.session_id)
        return

    kind = message.get("type")

    if kind == "authenticate":
        user_id = message.get("userId")
        if not user_id:
            return
        session.user_id = str(user_id)
        hub.join(session.session_id, user_room(session.user_id))
        logger.info("Session %s authenticated as %s", session.session_id, user_id)

    elif kind in ("join_patient_room", "leave_patient_room"):
        patient_id = message.get("patientId")
        if not patient_id:
            return
        if kind == "join_patient_room":
            hub.join(session.session_id, patient_room(patient_id))
        else:
            hub.leave(session.session_id, patient_room(patient_id))

    elif kind in _TYPING_EVENTS:
        patient_id = message.get("patientId")
        if not patient_id:
            return
        await hub.publish(
            _TYPING_EVENTS[kind],
            {
                "patientId": patient_id,
                "userId": message.get("userId") or session.user_id,
                "userName": message.get("userName", ""),
            },
            room=patient_room(patient_id),
            exclude=session.session_id,
        )

    elif kind == "ping":
        await session.send_json(LiveEvent(event=RealtimeEvent.PONG.value).to_wire())

    else:
        logger.debug("Unknown message type %r from %s", kind, session.session_id)


@router.websocket("/ws")
async def websocket_fanout(websocket: WebSocket):
    hub: FanoutHub | None = getattr(
        getattr(websocket.app.state, "services", None), "hub", None
    )
    if hub is None:
        await websocket.close(code=1011, reason="Service unavailable")
        return

    await websocket.accept()
    session = WebSocketSession(websocket, session_id=str(uuid.uuid4()))
    hub.connect(session)

    try:
        while True:
            message = await websocket.receive_json()
            await handle_client_message(hub, session, message)
    except WebSocketDisconnect:
        logger.info("Client %s disconnected", session.session_id)
    except Exception as exc:
        logger.error("WebSocket error on %s: %s", session.session_id, exc)
    finally:
        hub.disconnect(session.session_id)
