"""
Notification records and per-user notification preferences.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class NotificationType(str, Enum):
    APPOINTMENT_REMINDER = "appointment_reminder"
    PATIENT_UPDATE = "patient_update"
    SYSTEM_ALERT = "system_alert"
    TREATMENT_COMPLETION = "treatment_completion"
    DISCHARGE_REMINDER = "discharge_reminder"
    INQUIRY_RECEIVED = "inquiry_received"
    STAFF_INVITATION = "staff_invitation"
    PASSWORD_RESET = "password_reset"
    DIRECTED_NOTE = "directed_note"
    GENERAL = "general"
    ASSESSMENT_FOLLOWUP = "assessment_followup"
    PATIENT_ASSIGNED = "patient_assigned"
    DISCHARGE_REQUEST_CREATED = "discharge_request_created"
    DISCHARGE_REQUEST_APPROVED = "discharge_request_approved"
    DISCHARGE_REQUEST_DENIED = "discharge_request_denied"


class ReminderTiming(str, Enum):
    FIFTEEN_MINUTES = "15min"
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1hour"
    ONE_DAY = "1day"


_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class QuietHours(BaseModel):
    enabled: bool = False
    start: str = "22:00"  # HH:MM, clinic-local
    end: str = "08:00"

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value


class NotificationPreferences(BaseModel):
    email_notifications: bool = True  # master switch
    appointment_reminders: bool = True
    patient_updates: bool = True
    system_alerts: bool = True
    in_app_notifications: bool = True
    reminder_timing: ReminderTiming = ReminderTiming.ONE_HOUR
    quiet_hours: QuietHours = Field(default_factory=QuietHours)


class Notification(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: UtcDatetime = Field(default_factory=_now)
    expires_at: Optional[UtcDatetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


class NotificationStats(BaseModel):
    total: int = 0
    unread: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
