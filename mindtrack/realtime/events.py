"""
Live Event envelope — what every connected client receives.

State changes in the clinic (patient edits, appointment status writes,
new notifications, audit entries...) are published as LiveEvents.  The
envelope is the only shape that leaves the fanout hub.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class RealtimeEvent(str, Enum):
    """Event names clients subscribe to."""

    # Dashboard-wide entities (global scope)
    PATIENT_CREATED = "patient_created"
    PATIENT_UPDATED = "patient_updated"
    PATIENT_DELETED = "patient_deleted"
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_UPDATED = "appointment_updated"
    APPOINTMENT_DELETED = "appointment_deleted"
    TREATMENT_RECORD_CREATED = "treatment_record_created"
    TREATMENT_RECORD_UPDATED = "treatment_record_updated"
    TREATMENT_RECORD_DELETED = "treatment_record_deleted"
    STAFF_CREATED = "staff_created"
    STAFF_UPDATED = "staff_updated"
    STAFF_DELETED = "staff_deleted"
    DASHBOARD_STATS_UPDATED = "dashboard_stats_updated"
    INQUIRY_CREATED = "inquiry_created"
    INQUIRY_UPDATED = "inquiry_updated"
    AUDIT_LOG_CREATED = "audit_log_created"
    DISCHARGE_REQUEST_CREATED = "discharge_request_created"
    DISCHARGE_REQUEST_UPDATED = "discharge_request_updated"

    # Per-user room
    NOTIFICATION_CREATED = "notification_created"
    NOTIFICATION_READ = "notification_read"

    # Per-patient room (note threads)
    NOTE_CREATED = "note_created"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"
    USER_TYPING_START = "user_typing_start"
    USER_TYPING_STOP = "user_typing_stop"

    # Connection housekeeping
    PONG = "pong"


def patient_room(patient_id: str) -> str:
    return f"patient_{patient_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LiveEvent(BaseModel):
    """Envelope pushed to every receiving session."""

    event_id: str = Field(default_factory=_new_uuid)
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    room: Optional[str] = None  # None = global broadcast
    timestamp: datetime = Field(default_factory=_now)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
