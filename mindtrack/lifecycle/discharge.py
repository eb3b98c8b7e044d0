"""
Discharge Eligibility Engine — decides when a patient's treatment is done.

Four criteria, evaluated in a fixed order against the patient and their
treatment records:

  1. session count     completed records >= target_sessions
  2. target date       now >= discharge_criteria.target_date
  3. goal completion   >= 80% of treatment goals achieved
  4. narrative         2 of the last 3 sessions report readiness

Any single criterion makes the patient eligible.  Each match appends a
human-readable line to ``criteria`` and overwrites ``reason``, so the
last matching criterion supplies the reason.

Also owns the discharge-request workflow: clinicians request, an admin
or supervisor reviews once, approval is a manual discharge.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from mindtrack.infrastructure.store import ClinicStore
from mindtrack.lifecycle.audit import SYSTEM_USER, AuditTrail
from mindtrack.lifecycle.errors import NotFoundError, ValidationFailure
from mindtrack.lifecycle.models import (
    DEFAULT_TARGET_SESSIONS,
    DischargeRequest,
    DischargeRequestStatus,
    GoalStatus,
    Patient,
    PatientStatus,
    StaffRole,
    TreatmentRecord,
)
from mindtrack.notifications.service import NotificationService
from mindtrack.realtime.events import RealtimeEvent
from mindtrack.realtime.hub import FanoutHub

logger = logging.getLogger("lifecycle.discharge")

GOAL_COMPLETION_THRESHOLD = 0.8
RECENT_SESSION_WINDOW = 3
MIN_READY_SESSIONS = 2

READINESS_PHRASES = (
    "significant improvement",
    "goals achieved",
    "ready for discharge",
)

REVIEWER_ROLES = (StaffRole.ADMIN, StaffRole.SUPERVISOR)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Results
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class DischargeCheck:
    should_discharge: bool
    reason: str
    criteria: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DischargeOutcome:
    success: bool
    reason: str
    criteria: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CompletionBreakdown:
    manually_discharged: int = 0
    auto_discharged: int = 0
    eligible_for_discharge: int = 0


@dataclass
class CompletionRate:
    rate: int
    discharged_count: int
    total_count: int
    breakdown: CompletionBreakdown

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GoalUpdateResult:
    success: bool
    should_check_discharge: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Criteria
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _shows_readiness(record: TreatmentRecord) -> bool:
    progress = (record.progress or "").lower()
    return any(phrase in progress for phrase in READINESS_PHRASES)


def evaluate_discharge_criteria(
    patient: Patient, records: list[TreatmentRecord], now: datetime
) -> DischargeCheck:
    """
    Pure evaluation.  ``records`` must be ordered by session date,
    oldest first.
    """
    if patient.is_archived:
        return DischargeCheck(False, "Patient is archived", [])

    criteria: list[str] = []
    reason = ""
    discharge = patient.discharge_criteria

    # 1. Session count
    completed = sum(1 for r in records if r.is_completed())
    target_sessions = discharge.target_sessions or DEFAULT_TARGET_SESSIONS
    if completed >= target_sessions:
        criteria.append(f"Completed {completed} sessions (target: {target_sessions})")
        reason = "Session target reached"

    # 2. Target date
    if discharge.target_date is not None and now >= discharge.target_date:
        criteria.append(
            f"Reached target date: {discharge.target_date.strftime('%Y-%m-%d')}"
        )
        reason = "Target date reached"

    # 3. Goal completion
    goals = patient.treatment_goals
    if goals:
        achieved = sum(1 for g in goals if g.status == GoalStatus.ACHIEVED)
        ratio = achieved / len(goals)
        if ratio >= GOAL_COMPLETION_THRESHOLD:
            criteria.append(
                f"Achieved {achieved}/{len(goals)} treatment goals "
                f"({round_half_up(ratio * 100)}%)"
            )
            reason = "Treatment goals achieved"

    # 4. Narrative progress
    recent = records[-RECENT_SESSION_WINDOW:]
    if sum(1 for r in recent if _shows_readiness(r)) >= MIN_READY_SESSIONS:
        criteria.append("Recent sessions indicate treatment readiness")
        reason = "Progress indicators suggest completion"

    return DischargeCheck(bool(criteria), reason, criteria)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Engine
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DischargeEligibilityEngine:
    """
    Usage:
        engine = DischargeEligibilityEngine(store, audit, notifier, hub)
        check = await engine.check_for_auto_discharge(patient_id)
        if check.should_discharge:
            await engine.auto_discharge_patient(patient_id)
    """

    def __init__(
        self,
        store: ClinicStore,
        audit: AuditTrail,
        notifier: Optional[NotificationService] = None,
        hub: FanoutHub | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._audit = audit
        self._notifier = notifier
        self._hub = hub
        self._clock = clock

    async def _require_patient(self, patient_id: str) -> Patient:
        patient = await self._store.get_patient(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient

    async def check_for_auto_discharge(self, patient_id: str) -> DischargeCheck:
        patient = await self._require_patient(patient_id)
        return await self._check(patient)

    async def _check(self, patient: Patient) -> DischargeCheck:
        if patient.is_archived:
            return evaluate_discharge_criteria(patient, [], self._clock())
        records = await self._store.list_treatment_records(patient.id)
        return evaluate_discharge_criteria(patient, records, self._clock())

    async def auto_discharge_patient(self, patient_id: str) -> DischargeOutcome:
        patient = await self._require_patient(patient_id)
        check = await self._check(patient)
        if not check.should_discharge:
            return DischargeOutcome(False, "Discharge criteria not met", check.criteria)

        now = self._clock()
        patient.status = PatientStatus.DISCHARGED
        patient.discharge_criteria.auto_discharge = True
        patient.discharge_criteria.discharge_reason = check.reason
        patient.discharge_criteria.discharge_date = now
        patient.updated_at = now
        await self._store.save_patient(patient)
        logger.info("Patient %s auto-discharged: %s", patient_id, check.reason)

        await self._audit.append(
            SYSTEM_USER,
            "discharge",
            "patient",
            patient_id,
            {"reason": check.reason, "criteria": check.criteria, "automatic": True},
            automatic=True,
        )
        await self._publish(RealtimeEvent.PATIENT_UPDATED, patient)

        if self._notifier is not None and patient.assigned_therapist_id:
            try:
                await self._notifier.send_treatment_completion(
                    patient.assigned_therapist_id, patient.full_name, "automatic"
                )
            except Exception as exc:
                logger.error(
                    "Failed to notify therapist about discharge of %s: %s",
                    patient_id, exc,
                )

        return DischargeOutcome(True, check.reason, check.criteria)

    async def calculate_treatment_completion_rate(self) -> CompletionRate:
        """
        Fleet-wide report.  Re-runs eligibility for every active patient,
        so it is meant for periodic use, not hot request paths.
        """
        patients = await self._store.list_patients()
        breakdown = CompletionBreakdown()
        discharged = 0

        for patient in patients:
            if patient.status == PatientStatus.DISCHARGED:
                discharged += 1
                if patient.discharge_criteria.auto_discharge:
                    breakdown.auto_discharged += 1
                else:
                    breakdown.manually_discharged += 1
            elif patient.status == PatientStatus.ACTIVE:
                try:
                    if (await self._check(patient)).should_discharge:
                        breakdown.eligible_for_discharge += 1
                except Exception as exc:
                    logger.error(
                        "Error checking discharge for patient %s: %s", patient.id, exc
                    )

        total = len(patients)
        rate = round_half_up(discharged / total * 100) if total else 0
        return CompletionRate(
            rate=rate, discharged_count=discharged, total_count=total, breakdown=breakdown
        )

    async def update_treatment_goal(
        self, patient_id: str, goal_index: int, updates: dict[str, Any]
    ) -> GoalUpdateResult:
        """
        Merge ``updates`` (status, achieved_date, notes) into one goal.
        The caller decides whether to run a discharge check afterwards.
        """
        patient = await self._require_patient(patient_id)
        if goal_index < 0 or goal_index >= len(patient.treatment_goals):
            raise NotFoundError(f"Treatment goal {goal_index} not found")

        goal = patient.treatment_goals[goal_index]
        merged = goal.model_dump()
        for key in ("status", "achieved_date", "notes"):
            if updates.get(key) is not None:
                merged[key] = updates[key]
        try:
            patient.treatment_goals[goal_index] = type(goal).model_validate(merged)
        except ValueError as exc:
            raise ValidationFailure(f"Invalid goal update: {exc}") from exc

        patient.updated_at = self._clock()
        await self._store.save_patient(patient)
        await self._publish(RealtimeEvent.PATIENT_UPDATED, patient)

        # Only a move into achieved cascades, not edits to an achieved goal
        should_check = updates.get("status") in (GoalStatus.ACHIEVED, GoalStatus.ACHIEVED.value)
        return GoalUpdateResult(success=True, should_check_discharge=should_check)

    # ── Discharge requests ──

    async def request_discharge(
        self, patient_id: str, requested_by: str, reason: str
    ) -> DischargeRequest:
        patient = await self._require_patient(patient_id)
        if patient.is_archived:
            raise ValidationFailure("Patient is archived")
        if not reason.strip():
            raise ValidationFailure("A discharge reason is required")

        request = DischargeRequest(
            requested_by=requested_by, requested_at=self._clock(), reason=reason
        )
        patient.discharge_requests.append(request)
        patient.updated_at = self._clock()
        await self._store.save_patient(patient)
        logger.info("Discharge requested for %s by %s", patient_id, requested_by)

        await self._audit.append(
            requested_by, "create", "discharge_request", request.id,
            {"patientId": patient_id, "reason": reason},
        )
        await self._publish(
            RealtimeEvent.DISCHARGE_REQUEST_CREATED,
            {"patientId": patient_id, "request": request.model_dump(mode="json")},
        )

        if self._notifier is not None:
            try:
                reviewers = await self._store.list_users(roles=REVIEWER_ROLES)
                requester = await self._store.get_user(requested_by)
                await self._notifier.send_discharge_request_created(
                    [u.id for u in reviewers],
                    patient_id,
                    patient.full_name,
                    request.id,
                    requester.display_name if requester else requested_by,
                    reason,
                )
            except Exception as exc:
                logger.error("Failed to notify reviewers for %s: %s", request.id, exc)

        return request

    async def review_discharge_request(
        self,
        patient_id: str,
        request_id: str,
        reviewer_id: str,
        approve: bool,
        notes: Optional[str] = None,
    ) -> DischargeRequest:
        patient = await self._require_patient(patient_id)
        request = patient.get_discharge_request(request_id)
        if request is None:
            raise NotFoundError(f"Discharge request {request_id} not found")
        if request.is_reviewed:
            raise ValidationFailure(
                f"Discharge request {request_id} was already {request.status.value}"
            )

        now = self._clock()
        request.status = (
            DischargeRequestStatus.APPROVED if approve else DischargeRequestStatus.DENIED
        )
        request.reviewed_by = reviewer_id
        request.reviewed_at = now
        request.review_notes = notes

        if approve:
            patient.status = PatientStatus.DISCHARGED
            patient.discharge_criteria.auto_discharge = False
            patient.discharge_criteria.discharge_reason = request.reason
            patient.discharge_criteria.discharge_date = now
        patient.updated_at = now
        await self._store.save_patient(patient)
        logger.info(
            "Discharge request %s for %s %s by %s",
            request_id, patient_id, request.status.value, reviewer_id,
        )

        await self._audit.append(
            reviewer_id, "review", "discharge_request", request_id,
            {"patientId": patient_id, "status": request.status.value, "notes": notes},
        )
        await self._publish(
            RealtimeEvent.DISCHARGE_REQUEST_UPDATED,
            {"patientId": patient_id, "request": request.model_dump(mode="json")},
        )
        if approve:
            await self._publish(RealtimeEvent.PATIENT_UPDATED, patient)

        if self._notifier is not None:
            try:
                reviewer = await self._store.get_user(reviewer_id)
                await self._notifier.send_discharge_request_reviewed(
                    request.requested_by,
                    patient_id,
                    patient.full_name,
                    request_id,
                    approve,
                    reviewer.display_name if reviewer else reviewer_id,
                    notes,
                )
            except Exception as exc:
                logger.error("Failed to notify requester for %s: %s", request_id, exc)

        return request

    async def _publish(self, event: RealtimeEvent, payload: Any) -> None:
        if self._hub is not None:
            await self._hub.publish(event, payload)
