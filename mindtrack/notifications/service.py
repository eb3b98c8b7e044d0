"""
Notification Service — in-app notifications with optional email delivery.

Every notification is persisted first and pushed to the recipient's
``user_<id>`` room.  Email is a best-effort second step governed by the
recipient's preferences (see mindtrack.notifications.routing); a failed,
slow or refused email is logged and never reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from mindtrack.infrastructure.store import ClinicStore
from mindtrack.lifecycle.errors import NotFoundError, ValidationFailure
from mindtrack.notifications.dispatchers.base import EmailSender
from mindtrack.notifications.models import (
    Notification,
    NotificationPreferences,
    NotificationStats,
    NotificationType,
)
from mindtrack.notifications.routing import (
    is_in_quiet_hours,
    select_email_template,
    should_send_email,
)
from mindtrack.realtime.events import RealtimeEvent, user_room
from mindtrack.realtime.hub import FanoutHub

logger = logging.getLogger("notifications.service")

DEFAULT_EMAIL_TIMEOUT = 10.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fmt_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value)


class NotificationService:
    """
    Usage:
        service = NotificationService(store, email_sender, hub=hub)
        await service.send_patient_update(user_id, {...})
    """

    def __init__(
        self,
        store: ClinicStore,
        email_sender: EmailSender,
        hub: FanoutHub | None = None,
        clock: Callable[[], datetime] = _utcnow,
        timezone_name: str = "UTC",
        email_timeout: float = DEFAULT_EMAIL_TIMEOUT,
    ) -> None:
        self._store = store
        self._email = email_sender
        self._hub = hub
        self._clock = clock
        self._tz = ZoneInfo(timezone_name)
        self._email_timeout = email_timeout

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  Core
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def create_notification(
        self,
        user_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=NotificationType(type),
            title=title,
            message=message,
            data=data or {},
            created_at=self._clock(),
            expires_at=expires_at,
        )
        await self._store.create_notification(notification)
        logger.info(
            "Notification %s (%s) created for %s",
            notification.id, notification.type.value, user_id,
        )

        if self._hub is not None:
            await self._hub.publish(
                RealtimeEvent.NOTIFICATION_CREATED, notification, room=user_room(user_id)
            )

        await self._maybe_send_email(notification)
        return notification

    async def _maybe_send_email(self, notification: Notification) -> bool:
        """Apply the routing policy and attempt delivery.  Never raises."""
        try:
            user = await self._store.get_user(notification.user_id)
        except Exception as exc:
            logger.error("Cannot load user %s for email: %s", notification.user_id, exc)
            return False
        if user is None or not user.email or user.notification_preferences is None:
            return False

        preferences = user.notification_preferences
        if not should_send_email(preferences, notification.type):
            logger.debug("Email disabled for %s (%s)", user.id, notification.type.value)
            return False

        local_now = self._clock().astimezone(self._tz)
        if is_in_quiet_hours(preferences.quiet_hours, local_now):
            logger.info("Quiet hours for %s, email suppressed", user.id)
            return False

        try:
            selected = select_email_template(
                notification.type, notification.title, notification.message, notification.data
            )
        except Exception as exc:
            logger.error("Cannot build email for notification %s: %s", notification.id, exc)
            return False
        if selected is None:
            return False
        template_kind, payload = selected
        return await self._deliver(template_kind, user.email, payload)

    async def _deliver(self, template_kind: str, recipient: str, payload: dict[str, Any]) -> bool:
        try:
            sent = await asyncio.wait_for(
                self._email.send(template_kind, recipient, payload),
                timeout=self._email_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Email %s to %s timed out after %ss",
                template_kind, recipient, self._email_timeout,
            )
            return False
        except Exception as exc:
            logger.error("Email %s to %s failed: %s", template_kind, recipient, exc)
            return False

        if not sent:
            logger.warning("Email %s to %s was not delivered", template_kind, recipient)
        return bool(sent)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  Convenience senders
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def send_appointment_reminder(
        self, user_id: str, appointment_data: dict[str, Any]
    ) -> Notification:
        patient_name = appointment_data.get("patientName", "")
        date = _fmt_date(appointment_data.get("appointmentDate", ""))
        time = appointment_data.get("appointmentTime", "")
        return await self.create_notification(
            user_id,
            NotificationType.APPOINTMENT_REMINDER,
            "Appointment Reminder",
            f"Reminder: You have an appointment with {patient_name} on {date} at {time}",
            {"appointmentData": appointment_data},
        )

    async def send_patient_update(
        self, user_id: str, patient_data: dict[str, Any]
    ) -> Notification:
        return await self.create_notification(
            user_id,
            NotificationType.PATIENT_UPDATE,
            "Patient Update",
            f"{patient_data.get('patientName', '')}'s status has been updated to "
            f"{patient_data.get('status', '')}",
            {"patientData": patient_data},
        )

    async def send_system_alert(
        self, user_id: str, alert_data: dict[str, Any]
    ) -> Notification:
        severity = alert_data.get("severity", "info")
        if severity not in ("info", "warning", "error"):
            raise ValidationFailure(f"Unknown alert severity: {severity}")
        return await self.create_notification(
            user_id,
            NotificationType.SYSTEM_ALERT,
            alert_data.get("title", "System Alert"),
            alert_data.get("message", ""),
            {"alertData": alert_data},
        )

    async def send_treatment_completion(
        self, user_id: str, patient_name: str, completion_type: str = "manual"
    ) -> Notification:
        how = "automatically" if completion_type == "automatic" else "manually"
        return await self.create_notification(
            user_id,
            NotificationType.TREATMENT_COMPLETION,
            "Treatment Completed",
            f"{patient_name}'s treatment has been {how} completed and they are "
            "ready for discharge review.",
            {"patientName": patient_name, "completionType": completion_type},
        )

    async def send_discharge_reminder(
        self, user_id: str, patient_name: str, days_since_completion: int
    ) -> Notification:
        return await self.create_notification(
            user_id,
            NotificationType.DISCHARGE_REMINDER,
            "Discharge Review Needed",
            f"{patient_name} completed treatment {days_since_completion} days ago "
            "and needs discharge review.",
            {"patientName": patient_name, "daysSinceCompletion": days_since_completion},
        )

    async def send_inquiry_notification(
        self, user_id: str, inquiry_data: dict[str, Any]
    ) -> Notification:
        return await self.create_notification(
            user_id,
            NotificationType.INQUIRY_RECEIVED,
            "New Inquiry Received",
            f"New {inquiry_data.get('inquiryType', '')} inquiry from "
            f"{inquiry_data.get('patientName', '')}",
            {"inquiryData": inquiry_data},
        )

    async def send_staff_invitation(
        self, email: str, role: str, invited_by: str
    ) -> bool:
        """Email only; the invitee has no account to hold an in-app notification."""
        return await self._deliver(
            "staff_invitation", email, {"role": role, "invitedBy": invited_by}
        )

    async def send_patient_assigned(
        self, user_id: str, patient_id: str, patient_name: str
    ) -> Notification:
        return await self.create_notification(
            user_id,
            NotificationType.PATIENT_ASSIGNED,
            "New Patient Assigned",
            f"You have been assigned patient {patient_name}.",
            {"patientId": patient_id, "patientName": patient_name},
        )

    async def send_discharge_request_created(
        self,
        user_ids: Iterable[str],
        patient_id: str,
        patient_name: str,
        request_id: str,
        requested_by: str,
        reason: str,
    ) -> list[Notification]:
        sent = []
        for user_id in user_ids:
            sent.append(
                await self.create_notification(
                    user_id,
                    NotificationType.DISCHARGE_REQUEST_CREATED,
                    "Discharge Request Submitted",
                    f"{requested_by} requested discharge for {patient_name}: {reason}",
                    {"patientId": patient_id, "requestId": request_id},
                )
            )
        return sent

    async def send_discharge_request_reviewed(
        self,
        user_id: str,
        patient_id: str,
        patient_name: str,
        request_id: str,
        approved: bool,
        reviewer: str,
        review_notes: Optional[str] = None,
    ) -> Notification:
        if approved:
            type_, verdict = NotificationType.DISCHARGE_REQUEST_APPROVED, "approved"
        else:
            type_, verdict = NotificationType.DISCHARGE_REQUEST_DENIED, "denied"
        return await self.create_notification(
            user_id,
            type_,
            f"Discharge Request {verdict.capitalize()}",
            f"Your discharge request for {patient_name} was {verdict} by {reviewer}.",
            {"patientId": patient_id, "requestId": request_id, "reviewNotes": review_notes},
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    #  Reading & housekeeping
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def get_user_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int | None = None,
        type: NotificationType | None = None,
    ) -> list[Notification]:
        return await self._store.get_user_notifications(
            user_id, unread_only=unread_only, limit=limit, offset=offset, type=type
        )

    async def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        updated = await self._store.mark_notification_read(notification_id, user_id)
        if updated and self._hub is not None:
            await self._hub.publish(
                RealtimeEvent.NOTIFICATION_READ,
                {"id": notification_id, "user_id": user_id},
                room=user_room(user_id),
            )
        return updated

    async def mark_all_as_read(self, user_id: str) -> bool:
        return await self._store.mark_all_notifications_read(user_id)

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        return await self._store.delete_notification(notification_id, user_id)

    async def get_unread_count(self, user_id: str) -> int:
        return await self._store.count_unread_notifications(user_id)

    async def get_notification_stats(self, user_id: str) -> NotificationStats:
        notifications = await self._store.get_user_notifications(user_id)
        by_type = {t.value: 0 for t in NotificationType}
        unread = 0
        for n in notifications:
            by_type[n.type.value] += 1
            if not n.read:
                unread += 1
        return NotificationStats(total=len(notifications), unread=unread, by_type=by_type)

    async def cleanup_expired_notifications(self) -> int:
        removed = await self._store.delete_expired_notifications(self._clock())
        if removed:
            logger.info("Cleaned up %d expired notifications", removed)
        return removed

    # ── Preferences ──

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user.notification_preferences or NotificationPreferences()

    async def update_preferences(
        self, user_id: str, preferences: dict[str, Any] | NotificationPreferences
    ) -> NotificationPreferences:
        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        try:
            if isinstance(preferences, NotificationPreferences):
                validated = preferences
            else:
                validated = NotificationPreferences.model_validate(preferences)
        except ValidationError as exc:
            raise ValidationFailure(f"Invalid notification preferences: {exc}") from exc

        user.notification_preferences = validated
        await self._store.save_user(user)
        logger.info("Notification preferences updated for %s", user_id)
        return validated
