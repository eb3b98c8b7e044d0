"""
Appointment Status Engine — the appointment state machine.

    scheduled ─┬─> completed   (terminal)
               ├─> cancelled   (terminal)
               ├─> overdue ──┬─> completed / cancelled
               │             └─> no-show
               └─> no-show ────> completed / cancelled

Staff edits are gated by ``is_valid_status_transition``.  The periodic
sweep and the read-only recommendation both go through
``classify_appointment`` so that timer-driven and on-demand evaluation
can never disagree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from mindtrack.infrastructure.store import ClinicStore
from mindtrack.lifecycle.audit import SYSTEM_USER, AuditTrail
from mindtrack.lifecycle.errors import NotFoundError, ValidationFailure
from mindtrack.lifecycle.models import Appointment, AppointmentStatus
from mindtrack.realtime.events import RealtimeEvent
from mindtrack.realtime.hub import FanoutHub

logger = logging.getLogger("lifecycle.status")

S = AppointmentStatus

VALID_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.COMPLETED, S.CANCELLED, S.OVERDUE, S.NO_SHOW}),
    S.OVERDUE: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset({S.COMPLETED, S.CANCELLED}),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})

# Only these are re-evaluated automatically; no-show is changed by staff only
SWEEPABLE_STATUSES = frozenset({S.SCHEDULED, S.OVERDUE})

NO_SHOW_AFTER = timedelta(hours=24)

NO_SHOW_REASON = "Automatically marked as no-show (appointment date passed)"
OVERDUE_REASON = "Appointment is overdue (date has passed)"


def _coerce_status(value: AppointmentStatus | str) -> AppointmentStatus | None:
    try:
        return AppointmentStatus(value)
    except ValueError:
        return None


def is_valid_status_transition(
    current: AppointmentStatus | str, new: AppointmentStatus | str
) -> bool:
    """True if the table allows ``current`` -> ``new``.  Unknown statuses never do."""
    current_status = _coerce_status(current)
    new_status = _coerce_status(new)
    if current_status is None or new_status is None:
        return False
    return new_status in VALID_TRANSITIONS[current_status]


def classify_appointment(
    appointment: Appointment, now: datetime
) -> tuple[AppointmentStatus, str]:
    """
    Return (status the appointment should have at ``now``, reason).

    "Today" is the calendar day of ``now`` in its own timezone, so pass
    clinic-local time to get clinic-local days.
    """
    current = appointment.status

    if current in TERMINAL_STATUSES:
        return current, "Status is final"
    if current not in SWEEPABLE_STATUSES:
        return current, "No-show status is only changed manually"

    appointment_date = appointment.appointment_date
    if appointment_date < now:
        if now - appointment_date > NO_SHOW_AFTER:
            return S.NO_SHOW, NO_SHOW_REASON
        return S.OVERDUE, OVERDUE_REASON

    if appointment_date.astimezone(now.tzinfo).date() == now.date():
        return current, "Appointment is scheduled for today"
    return current, "Appointment is scheduled for the future"


@dataclass
class StatusRecommendation:
    recommended_status: AppointmentStatus
    reason: str

    def as_dict(self) -> dict:
        return {
            "recommended_status": self.recommended_status.value,
            "reason": self.reason,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppointmentStatusEngine:
    """
    Applies the state machine against the appointment store.

    Usage:
        engine = AppointmentStatusEngine(store, audit, hub)
        updated = await engine.update_appointment_statuses()
    """

    def __init__(
        self,
        store: ClinicStore,
        audit: AuditTrail,
        hub: FanoutHub | None = None,
        clock: Callable[[], datetime] = _utcnow,
        timezone_name: str = "UTC",
    ) -> None:
        self._store = store
        self._audit = audit
        self._hub = hub
        self._clock = clock
        self._tz = ZoneInfo(timezone_name)

    def _local_now(self) -> datetime:
        return self._clock().astimezone(self._tz)

    def get_status_recommendation(self, appointment: Appointment) -> StatusRecommendation:
        """Preview what the sweep would do, without writing anything."""
        status, reason = classify_appointment(appointment, self._local_now())
        if status != appointment.status and not is_valid_status_transition(
            appointment.status, status
        ):
            status = appointment.status
        return StatusRecommendation(recommended_status=status, reason=reason)

    async def update_appointment_statuses(self) -> int:
        """
        Sweep every non-terminal appointment and write the automatic
        transitions.  Returns the number of appointments updated.
        """
        logger.info("Updating appointment statuses...")
        now = self._local_now()
        appointments = await self._store.list_appointments(statuses=SWEEPABLE_STATUSES)
        updated = 0

        for appointment in appointments:
            current = appointment.status
            new_status, reason = classify_appointment(appointment, now)
            if new_status == current or not is_valid_status_transition(current, new_status):
                continue

            try:
                saved = await self._store.update_appointment_status(
                    appointment.id, new_status, now
                )
                if saved is None:
                    logger.warning("Appointment %s vanished during sweep", appointment.id)
                    continue
                await self._audit.append(
                    SYSTEM_USER,
                    "update",
                    "appointment_status",
                    appointment.id,
                    {
                        "oldStatus": current.value,
                        "newStatus": new_status.value,
                        "reason": reason,
                        "automatic": True,
                    },
                    automatic=True,
                )
            except Exception as exc:
                logger.error("Failed to update appointment %s: %s", appointment.id, exc)
                continue

            updated += 1
            logger.info(
                "Updated appointment %s from %s to %s: %s",
                appointment.id, current.value, new_status.value, reason,
            )
            await self._publish(saved)

        logger.info("Appointment status update complete. Updated %d appointments.", updated)
        return updated

    async def change_status(
        self,
        appointment_id: str,
        new_status: AppointmentStatus | str,
        user_id: str,
        reason: str = "",
    ) -> Appointment:
        """Manual status change by a staff member."""
        appointment = await self._store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        target = _coerce_status(new_status)
        if target is None:
            raise ValidationFailure(f"Unknown appointment status: {new_status}")
        if not is_valid_status_transition(appointment.status, target):
            raise ValidationFailure(
                f"Cannot change appointment status from "
                f"{appointment.status.value} to {target.value}"
            )

        old_status = appointment.status
        saved = await self._store.update_appointment_status(
            appointment_id, target, self._clock()
        )
        if saved is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        details = {"oldStatus": old_status.value, "newStatus": target.value}
        if reason:
            details["reason"] = reason
        await self._audit.append(
            user_id, "update", "appointment_status", appointment_id, details
        )
        await self._publish(saved)
        return saved

    async def _publish(self, appointment: Appointment) -> None:
        if self._hub is not None:
            await self._hub.publish(RealtimeEvent.APPOINTMENT_UPDATED, appointment)
