"""
Clinic Store — the storage collaborator behind the lifecycle core.

The core only needs a handful of document reads and writes, expressed by
the ``ClinicStore`` ABC.  Two backends ship with the service:

  InMemoryClinicStore  — dict-backed, used for local development and tests
  GCSClinicStore       — one JSON document per record in a GCS bucket

Blob layout (GCS backend):
  appointments/{id}.json
  patients/{id}.json
  treatment_records/{patient_id}/{id}.json
  users/{id}.json
  notifications/{user_id}/{id}.json
  audit_logs/{id}.json
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from google.cloud.exceptions import GoogleCloudError

from mindtrack.lifecycle.errors import DependencyFailure
from mindtrack.lifecycle.models import (
    Appointment,
    AppointmentStatus,
    AuditEntry,
    Patient,
    PatientStatus,
    StaffRole,
    TreatmentRecord,
    User,
)
from mindtrack.notifications.models import Notification, NotificationType

logger = logging.getLogger("infrastructure.store")


def filter_notifications(
    notifications: Iterable[Notification],
    *,
    unread_only: bool = False,
    limit: int | None = None,
    offset: int | None = None,
    type: NotificationType | None = None,
) -> list[Notification]:
    """Newest first, then type/unread filters, then offset/limit."""
    result = [
        n for n in notifications
        if (not unread_only or not n.read) and (type is None or n.type == type)
    ]
    result.sort(key=lambda n: n.created_at, reverse=True)
    if offset:
        result = result[offset:]
    if limit:
        result = result[:limit]
    return result


class ClinicStore(ABC):
    """Async document store used by every lifecycle component."""

    # ── Appointments ──

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        ...

    @abstractmethod
    async def save_appointment(self, appointment: Appointment) -> Appointment:
        ...

    @abstractmethod
    async def list_appointments(
        self, statuses: Iterable[AppointmentStatus] | None = None
    ) -> list[Appointment]:
        ...

    async def update_appointment_status(
        self, appointment_id: str, status: AppointmentStatus, now: datetime
    ) -> Optional[Appointment]:
        appointment = await self.get_appointment(appointment_id)
        if appointment is None:
            return None
        appointment.status = status
        appointment.updated_at = now
        return await self.save_appointment(appointment)

    # ── Patients & records ──

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        ...

    @abstractmethod
    async def save_patient(self, patient: Patient) -> Patient:
        ...

    @abstractmethod
    async def list_patients(self, status: PatientStatus | None = None) -> list[Patient]:
        ...

    async def count_patients(self, status: PatientStatus | None = None) -> int:
        return len(await self.list_patients(status))

    @abstractmethod
    async def list_treatment_records(self, patient_id: str) -> list[TreatmentRecord]:
        """Records for one patient, oldest session first."""

    @abstractmethod
    async def save_treatment_record(self, record: TreatmentRecord) -> TreatmentRecord:
        ...

    # ── Users ──

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def save_user(self, user: User) -> User:
        ...

    @abstractmethod
    async def list_users(self, roles: Iterable[StaffRole] | None = None) -> list[User]:
        ...

    # ── Notifications ──

    @abstractmethod
    async def create_notification(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def get_user_notifications(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int | None = None,
        type: NotificationType | None = None,
    ) -> list[Notification]:
        ...

    @abstractmethod
    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        """True if an unread notification owned by ``user_id`` was updated."""

    @abstractmethod
    async def mark_all_notifications_read(self, user_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        ...

    async def count_unread_notifications(self, user_id: str) -> int:
        return len(await self.get_user_notifications(user_id, unread_only=True))

    @abstractmethod
    async def delete_expired_notifications(self, now: datetime) -> int:
        ...

    # ── Audit ──

    @abstractmethod
    async def append_audit_entry(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    async def list_audit_entries(self, resource_id: str | None = None) -> list[AuditEntry]:
        ...


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  In-memory backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InMemoryClinicStore(ClinicStore):
    """
    Dict-backed store.  Returns deep copies so callers can never mutate
    stored state without going through a save.
    """

    def __init__(self) -> None:
        self._appointments: dict[str, Appointment] = {}
        self._patients: dict[str, Patient] = {}
        self._records: dict[str, TreatmentRecord] = {}
        self._users: dict[str, User] = {}
        self._notifications: dict[str, Notification] = {}
        self._audit: list[AuditEntry] = []

    @staticmethod
    def _copy(model):
        return None if model is None else model.model_copy(deep=True)

    async def get_appointment(self, appointment_id):
        return self._copy(self._appointments.get(appointment_id))

    async def save_appointment(self, appointment):
        self._appointments[appointment.id] = self._copy(appointment)
        return appointment

    async def list_appointments(self, statuses=None):
        wanted = set(statuses) if statuses is not None else None
        return [
            self._copy(a) for a in self._appointments.values()
            if wanted is None or a.status in wanted
        ]

    async def get_patient(self, patient_id):
        return self._copy(self._patients.get(patient_id))

    async def save_patient(self, patient):
        self._patients[patient.id] = self._copy(patient)
        return patient

    async def list_patients(self, status=None):
        return [
            self._copy(p) for p in self._patients.values()
            if status is None or p.status == status
        ]

    async def list_treatment_records(self, patient_id):
        records = [
            self._copy(r) for r in self._records.values() if r.patient_id == patient_id
        ]
        records.sort(key=lambda r: r.session_date)
        return records

    async def save_treatment_record(self, record):
        self._records[record.id] = self._copy(record)
        return record

    async def get_user(self, user_id):
        return self._copy(self._users.get(user_id))

    async def save_user(self, user):
        self._users[user.id] = self._copy(user)
        return user

    async def list_users(self, roles=None):
        wanted = set(roles) if roles is not None else None
        return [
            self._copy(u) for u in self._users.values()
            if wanted is None or u.role in wanted
        ]

    async def create_notification(self, notification):
        self._notifications[notification.id] = self._copy(notification)
        return notification

    async def get_user_notifications(
        self, user_id, *, unread_only=False, limit=None, offset=None, type=None
    ):
        owned = (
            self._copy(n) for n in self._notifications.values() if n.user_id == user_id
        )
        return filter_notifications(
            owned, unread_only=unread_only, limit=limit, offset=offset, type=type
        )

    async def mark_notification_read(self, notification_id, user_id):
        n = self._notifications.get(notification_id)
        if n is None or n.user_id != user_id or n.read:
            return False
        n.read = True
        return True

    async def mark_all_notifications_read(self, user_id):
        modified = False
        for n in self._notifications.values():
            if n.user_id == user_id and not n.read:
                n.read = True
                modified = True
        return modified

    async def delete_notification(self, notification_id, user_id):
        n = self._notifications.get(notification_id)
        if n is None or n.user_id != user_id:
            return False
        del self._notifications[notification_id]
        return True

    async def delete_expired_notifications(self, now):
        expired = [nid for nid, n in self._notifications.items() if n.is_expired(now)]
        for nid in expired:
            del self._notifications[nid]
        return len(expired)

    async def append_audit_entry(self, entry):
        self._audit.append(self._copy(entry))

    async def list_audit_entries(self, resource_id=None):
        return [
            self._copy(e) for e in self._audit
            if resource_id is None or e.resource_id == resource_id
        ]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GCS backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class GCSClinicStore(ClinicStore):
    """
    Persists every record as a JSON blob via GCSBucketManager.

    The google-cloud-storage client is blocking, so each operation runs
    in a worker thread.  There is no optimistic locking: last write wins.
    """

    APPOINTMENTS = "appointments"
    PATIENTS = "patients"
    RECORDS = "treatment_records"
    USERS = "users"
    NOTIFICATIONS = "notifications"
    AUDIT = "audit_logs"

    def __init__(self, gcs_bucket_manager) -> None:
        self._gcs = gcs_bucket_manager

    # ── Blob helpers (sync, run in threads) ──

    def _load(self, model_cls, path):
        data = self._gcs.read_json(path)
        return None if data is None else model_cls.model_validate(data)

    def _dump(self, path, model) -> None:
        self._gcs.write_json(path, model.model_dump_json())

    def _load_all(self, model_cls, prefix):
        items = []
        for name in self._gcs.list_names(prefix):
            try:
                item = self._load(model_cls, name)
            except Exception as exc:
                logger.warning("Skipping unreadable document %s: %s", name, exc)
                continue
            if item is not None:
                items.append(item)
        return items

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except GoogleCloudError as exc:
            logger.error("GCS operation %s failed: %s", fn.__name__, exc)
            raise DependencyFailure(f"Storage unavailable: {exc}") from exc

    # ── Appointments ──

    async def get_appointment(self, appointment_id):
        return await self._run(
            self._load, Appointment, f"{self.APPOINTMENTS}/{appointment_id}.json"
        )

    async def save_appointment(self, appointment):
        await self._run(
            self._dump, f"{self.APPOINTMENTS}/{appointment.id}.json", appointment
        )
        return appointment

    async def list_appointments(self, statuses=None):
        items = await self._run(self._load_all, Appointment, self.APPOINTMENTS)
        if statuses is None:
            return items
        wanted = set(statuses)
        return [a for a in items if a.status in wanted]

    # ── Patients & records ──

    async def get_patient(self, patient_id):
        return await self._run(self._load, Patient, f"{self.PATIENTS}/{patient_id}.json")

    async def save_patient(self, patient):
        await self._run(self._dump, f"{self.PATIENTS}/{patient.id}.json", patient)
        return patient

    async def list_patients(self, status=None):
        items = await self._run(self._load_all, Patient, self.PATIENTS)
        return [p for p in items if status is None or p.status == status]

    async def list_treatment_records(self, patient_id):
        records = await self._run(
            self._load_all, TreatmentRecord, f"{self.RECORDS}/{patient_id}"
        )
        records.sort(key=lambda r: r.session_date)
        return records

    async def save_treatment_record(self, record):
        await self._run(
            self._dump, f"{self.RECORDS}/{record.patient_id}/{record.id}.json", record
        )
        return record

    # ── Users ──

    async def get_user(self, user_id):
        return await self._run(self._load, User, f"{self.USERS}/{user_id}.json")

    async def save_user(self, user):
        await self._run(self._dump, f"{self.USERS}/{user.id}.json", user)
        return user

    async def list_users(self, roles=None):
        items = await self._run(self._load_all, User, self.USERS)
        if roles is None:
            return items
        wanted = set(roles)
        return [u for u in items if u.role in wanted]

    # ── Notifications ──

    def _notification_path(self, user_id: str, notification_id: str) -> str:
        return f"{self.NOTIFICATIONS}/{user_id}/{notification_id}.json"

    async def create_notification(self, notification):
        await self._run(
            self._dump,
            self._notification_path(notification.user_id, notification.id),
            notification,
        )
        return notification

    async def get_user_notifications(
        self, user_id, *, unread_only=False, limit=None, offset=None, type=None
    ):
        items = await self._run(
            self._load_all, Notification, f"{self.NOTIFICATIONS}/{user_id}"
        )
        return filter_notifications(
            items, unread_only=unread_only, limit=limit, offset=offset, type=type
        )

    async def mark_notification_read(self, notification_id, user_id):
        path = self._notification_path(user_id, notification_id)
        notification = await self._run(self._load, Notification, path)
        if notification is None or notification.read:
            return False
        notification.read = True
        await self._run(self._dump, path, notification)
        return True

    async def mark_all_notifications_read(self, user_id):
        modified = False
        for notification in await self.get_user_notifications(user_id, unread_only=True):
            notification.read = True
            await self._run(
                self._dump, self._notification_path(user_id, notification.id), notification
            )
            modified = True
        return modified

    async def delete_notification(self, notification_id, user_id):
        return await self._run(
            self._gcs.delete, self._notification_path(user_id, notification_id)
        )

    async def delete_expired_notifications(self, now):
        items = await self._run(self._load_all, Notification, self.NOTIFICATIONS)
        deleted = 0
        for notification in items:
            if notification.is_expired(now):
                path = self._notification_path(notification.user_id, notification.id)
                if await self._run(self._gcs.delete, path):
                    deleted += 1
        return deleted

    # ── Audit ──

    async def append_audit_entry(self, entry):
        await self._run(self._dump, f"{self.AUDIT}/{entry.id}.json", entry)

    async def list_audit_entries(self, resource_id=None):
        items = await self._run(self._load_all, AuditEntry, self.AUDIT)
        items.sort(key=lambda e: e.timestamp)
        return [e for e in items if resource_id is None or e.resource_id == resource_id]
