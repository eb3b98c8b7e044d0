"""
Email routing policy — decides whether an in-app notification also
goes out by email.  Pure functions, no I/O.
"""

from __future__ import annotations

from datetime import datetime, time
from typing import Any, Mapping, Optional

from mindtrack.notifications.models import (
    NotificationPreferences,
    NotificationType,
    QuietHours,
)

# Category switch that must be on (together with the master switch)
_CATEGORY_SWITCH: dict[NotificationType, str] = {
    NotificationType.APPOINTMENT_REMINDER: "appointment_reminders",
    NotificationType.PATIENT_UPDATE: "patient_updates",
    NotificationType.SYSTEM_ALERT: "system_alerts",
}

# Typed emails need their payload sub-object; without it no email is sent
TYPED_PAYLOAD_KEYS: dict[NotificationType, str] = {
    NotificationType.APPOINTMENT_REMINDER: "appointmentData",
    NotificationType.PATIENT_UPDATE: "patientData",
    NotificationType.SYSTEM_ALERT: "alertData",
}

GENERIC_TEMPLATE = "generic"


def should_send_email(
    preferences: NotificationPreferences, notification_type: NotificationType
) -> bool:
    if not preferences.email_notifications:
        return False
    switch = _CATEGORY_SWITCH.get(notification_type)
    if switch is None:
        return True
    return bool(getattr(preferences, switch))


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def is_in_quiet_hours(quiet_hours: QuietHours, at: time | datetime) -> bool:
    """
    True if ``at`` (clinic-local) falls inside the quiet window.
    A window with start > end wraps past midnight.
    """
    if not quiet_hours.enabled:
        return False
    current = at.hour * 60 + at.minute
    start = _minutes(quiet_hours.start)
    end = _minutes(quiet_hours.end)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def select_email_template(
    notification_type: NotificationType,
    title: str,
    message: str,
    data: Optional[dict[str, Any]],
) -> tuple[str, dict[str, Any]] | None:
    """
    Pick (template kind, payload) for an email, or None when a typed
    notification arrived without a usable payload.
    """
    payload_key = TYPED_PAYLOAD_KEYS.get(notification_type)
    if payload_key is None:
        return GENERIC_TEMPLATE, {"title": title, "message": message}
    typed = (data or {}).get(payload_key)
    if not typed or not isinstance(typed, Mapping):
        return None
    return notification_type.value, dict(typed)
