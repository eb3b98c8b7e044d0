"""
Clinic records the lifecycle core reads and writes.

One JSON document per appointment, patient, treatment record and staff
user.  The storage collaborator (mindtrack.infrastructure.store) persists
them; the engines only ever see these models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from mindtrack.notifications.models import NotificationPreferences, UtcDatetime


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class PatientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCHARGED = "discharged"


class GoalStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ACHIEVED = "achieved"


class DischargeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class StaffRole(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    THERAPIST = "therapist"
    STAFF = "staff"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Appointments
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Appointment(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    patient_id: str
    clinical_id: str  # assigned clinician
    appointment_date: UtcDatetime
    duration: int = 60  # minutes
    type: str = "therapy"
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str = ""
    created_at: UtcDatetime = Field(default_factory=_now)
    updated_at: UtcDatetime = Field(default_factory=_now)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Patients
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


DEFAULT_TARGET_SESSIONS = 12


class TreatmentGoal(BaseModel):
    description: str
    status: GoalStatus = GoalStatus.NOT_STARTED
    target_date: Optional[UtcDatetime] = None
    achieved_date: Optional[UtcDatetime] = None
    notes: Optional[str] = None


class DischargeCriteria(BaseModel):
    target_sessions: int = DEFAULT_TARGET_SESSIONS
    target_date: Optional[UtcDatetime] = None
    auto_discharge: bool = False
    discharge_reason: Optional[str] = None
    discharge_date: Optional[UtcDatetime] = None


class DischargeRequest(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    requested_by: str
    requested_at: UtcDatetime = Field(default_factory=_now)
    reason: str
    status: DischargeRequestStatus = DischargeRequestStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[UtcDatetime] = None
    review_notes: Optional[str] = None

    @property
    def is_reviewed(self) -> bool:
        return self.status != DischargeRequestStatus.PENDING


class Patient(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    first_name: str
    last_name: str
    email: str = ""
    status: PatientStatus = PatientStatus.ACTIVE
    assigned_therapist_id: Optional[str] = None
    treatment_goals: list[TreatmentGoal] = Field(default_factory=list)
    discharge_criteria: DischargeCriteria = Field(default_factory=DischargeCriteria)
    discharge_requests: list[DischargeRequest] = Field(default_factory=list)
    created_at: UtcDatetime = Field(default_factory=_now)
    updated_at: UtcDatetime = Field(default_factory=_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_archived(self) -> bool:
        return self.status in (PatientStatus.INACTIVE, PatientStatus.DISCHARGED)

    def get_discharge_request(self, request_id: str) -> DischargeRequest | None:
        for request in self.discharge_requests:
            if request.id == request_id:
                return request
        return None

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Treatment records
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TreatmentRecord(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    patient_id: str
    therapist_id: str = ""
    session_date: UtcDatetime
    session_type: str = ""
    notes: str = ""
    progress: str = ""

    def is_completed(self) -> bool:
        """A session counts only when type, notes and progress are all filled in."""
        return all(
            value and value.strip()
            for value in (self.session_type, self.notes, self.progress)
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Staff users & audit entries
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class User(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: StaffRole = StaffRole.STAFF
    notification_preferences: Optional[NotificationPreferences] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email or self.id


class AuditEntry(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    user_id: str
    action: str
    resource_type: str
    resource_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    automatic: bool = False
    timestamp: UtcDatetime = Field(default_factory=_now)
