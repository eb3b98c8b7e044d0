"""
Tests for the clinic stores — in-memory isolation, the GCS JSON layout
and the GCSBucketManager wrapper.
"""

import json
import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from google.cloud.exceptions import GoogleCloudError, NotFound

from mindtrack.infrastructure.gcs import GCSBucketManager
from mindtrack.infrastructure.store import GCSClinicStore
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


# ── Mock bucket manager ──


class MockBucketManager:
    """Dict-backed stand-in for GCSBucketManager."""

    def __init__(self):
        self.blobs: dict[str, str] = {}

    def read_json(self, name):
        content = self.blobs.get(name)
        return None if content is None else json.loads(content)

    def write_json(self, name, content):
        self.blobs[name] = content if isinstance(content, str) else json.dumps(content)

    def delete(self, name):
        return self.blobs.pop(name, None) is not None

    def list_names(self, prefix):
        prefix = prefix.rstrip("/") + "/"
        return [n for n in self.blobs if n.startswith(prefix) and n.endswith(".json")]


@pytest.fixture
def bucket():
    return MockBucketManager()


@pytest.fixture
def gcs_store(bucket):
    return GCSClinicStore(bucket)


def make_notification(clock, user_id="DR-1", minutes=0, **kwargs):
    return Notification(
        user_id=user_id,
        type=kwargs.pop("type", NotificationType.GENERAL),
        title="t",
        message="m",
        created_at=clock() + timedelta(minutes=minutes),
        **kwargs,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  In-memory store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store):
        await store.save_patient(Patient(id="PT-1", first_name="A", last_name="B"))
        patient = await store.get_patient("PT-1")
        patient.status = PatientStatus.DISCHARGED
        assert (await store.get_patient("PT-1")).status == PatientStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_list_appointments_by_status(self, store, clock):
        for status in (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED):
            await store.save_appointment(
                Appointment(patient_id="P", clinical_id="C", appointment_date=clock(), status=status)
            )
        found = await store.list_appointments(statuses={AppointmentStatus.SCHEDULED})
        assert [a.status for a in found] == [AppointmentStatus.SCHEDULED]

    @pytest.mark.asyncio
    async def test_update_missing_appointment(self, store, clock):
        assert await store.update_appointment_status("nope", AppointmentStatus.OVERDUE, clock()) is None

    @pytest.mark.asyncio
    async def test_records_sorted_by_session_date(self, store, clock):
        late = TreatmentRecord(patient_id="PT-1", session_date=clock())
        early = TreatmentRecord(patient_id="PT-1", session_date=clock() - timedelta(days=7))
        other = TreatmentRecord(patient_id="PT-2", session_date=clock())
        for r in (late, early, other):
            await store.save_treatment_record(r)
        assert [r.id for r in await store.list_treatment_records("PT-1")] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_list_users_by_role(self, store):
        await store.save_user(User(id="A", role=StaffRole.ADMIN))
        await store.save_user(User(id="T", role=StaffRole.THERAPIST))
        found = await store.list_users(roles=[StaffRole.ADMIN, StaffRole.SUPERVISOR])
        assert [u.id for u in found] == ["A"]

    @pytest.mark.asyncio
    async def test_count_patients(self, store):
        await store.save_patient(Patient(first_name="A", last_name="B"))
        await store.save_patient(Patient(first_name="C", last_name="D", status=PatientStatus.DISCHARGED))
        assert await store.count_patients() == 2
        assert await store.count_patients(PatientStatus.DISCHARGED) == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GCS store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestGCSClinicStore:

    @pytest.mark.asyncio
    async def test_blob_layout(self, gcs_store, bucket, clock):
        await gcs_store.save_appointment(
            Appointment(id="A-1", patient_id="PT-1", clinical_id="C", appointment_date=clock())
        )
        await gcs_store.save_patient(Patient(id="PT-1", first_name="A", last_name="B"))
        await gcs_store.save_treatment_record(
            TreatmentRecord(id="R-1", patient_id="PT-1", session_date=clock())
        )
        await gcs_store.save_user(User(id="U-1"))
        await gcs_store.create_notification(make_notification(clock, id="N-1", user_id="U-1"))
        await gcs_store.append_audit_entry(
            AuditEntry(id="AU-1", user_id="U-1", action="update", resource_type="x", resource_id="y")
        )

        assert set(bucket.blobs) == {
            "appointments/A-1.json",
            "patients/PT-1.json",
            "treatment_records/PT-1/R-1.json",
            "users/U-1.json",
            "notifications/U-1/N-1.json",
            "audit_logs/AU-1.json",
        }

    @pytest.mark.asyncio
    async def test_appointment_status_update(self, gcs_store, clock):
        await gcs_store.save_appointment(
            Appointment(id="A-1", patient_id="PT-1", clinical_id="C", appointment_date=clock())
        )
        later = clock() + timedelta(hours=1)
        saved = await gcs_store.update_appointment_status("A-1", AppointmentStatus.OVERDUE, later)
        assert saved.status == AppointmentStatus.OVERDUE
        stored = await gcs_store.get_appointment("A-1")
        assert stored.status == AppointmentStatus.OVERDUE
        assert stored.updated_at == later

    @pytest.mark.asyncio
    async def test_missing_document(self, gcs_store):
        assert await gcs_store.get_patient("nope") is None

    @pytest.mark.asyncio
    async def test_unreadable_document_skipped(self, gcs_store, bucket):
        await gcs_store.save_patient(Patient(id="PT-1", first_name="A", last_name="B"))
        bucket.blobs["patients/broken.json"] = '{"first_name": 1}'
        assert [p.id for p in await gcs_store.list_patients()] == ["PT-1"]

    @pytest.mark.asyncio
    async def test_notifications_scoped_to_owner(self, gcs_store, clock):
        n = make_notification(clock, user_id="U-1")
        await gcs_store.create_notification(n)
        await gcs_store.create_notification(make_notification(clock, user_id="U-2"))

        assert len(await gcs_store.get_user_notifications("U-1")) == 1
        assert await gcs_store.mark_notification_read(n.id, "U-2") is False
        assert await gcs_store.mark_notification_read(n.id, "U-1") is True
        assert await gcs_store.mark_notification_read(n.id, "U-1") is False
        assert await gcs_store.count_unread_notifications("U-1") == 0
        assert await gcs_store.delete_notification(n.id, "U-2") is False
        assert await gcs_store.delete_notification(n.id, "U-1") is True

    @pytest.mark.asyncio
    async def test_delete_expired(self, gcs_store, clock):
        await gcs_store.create_notification(
            make_notification(clock, user_id="U-1", expires_at=clock() - timedelta(days=1))
        )
        await gcs_store.create_notification(
            make_notification(clock, user_id="U-2", expires_at=clock() - timedelta(days=1))
        )
        await gcs_store.create_notification(make_notification(clock, user_id="U-1"))
        assert await gcs_store.delete_expired_notifications(clock()) == 2
        assert len(await gcs_store.get_user_notifications("U-1")) == 1

    @pytest.mark.asyncio
    async def test_bucket_failure_raises_dependency_failure(self, gcs_store, bucket):
        bucket.read_json = MagicMock(side_effect=GoogleCloudError("503 backend unavailable"))
        with pytest.raises(DependencyFailure):
            await gcs_store.get_patient("PT-1")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GCSBucketManager
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def make_manager():
    manager = GCSBucketManager("test-bucket")
    manager._client = MagicMock()
    manager._bucket = MagicMock()
    return manager


class TestBucketManager:

    def test_read_json(self):
        manager = make_manager()
        manager._bucket.blob.return_value.download_as_text.return_value = '{"a": 1}'
        assert manager.read_json("x.json") == {"a": 1}
        manager._bucket.blob.assert_called_with("x.json")

    def test_read_missing_blob(self):
        manager = make_manager()
        manager._bucket.blob.return_value.download_as_text.side_effect = NotFound("gone")
        assert manager.read_json("x.json") is None

    def test_write_dict_as_json(self):
        manager = make_manager()
        manager.write_json("x.json", {"a": 1})
        upload = manager._bucket.blob.return_value.upload_from_string
        assert json.loads(upload.call_args[0][0]) == {"a": 1}
        assert upload.call_args[1]["content_type"] == "application/json"

    def test_delete_missing_blob(self):
        manager = make_manager()
        manager._bucket.blob.return_value.delete.side_effect = NotFound("gone")
        assert manager.delete("x.json") is False

    def test_list_names_filters_json(self):
        manager = make_manager()
        blobs = [MagicMock(), MagicMock()]
        blobs[0].name = "patients/a.json"
        blobs[1].name = "patients/readme.txt"
        manager._client.list_blobs.return_value = blobs
        assert manager.list_names("patients") == ["patients/a.json"]
        manager._client.list_blobs.assert_called_with("test-bucket", prefix="patients/")
