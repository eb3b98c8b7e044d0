"""
Tests for the HTTP and WebSocket surface — status codes, caller roles,
the goal → discharge cascade and live events over /ws.
"""

import asyncio
import pytest
from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from mindtrack.dependencies import http_error
from mindtrack.lifecycle.errors import DependencyFailure, NotFoundError, ValidationFailure
from mindtrack.lifecycle.models import (
    Appointment,
    AppointmentStatus,
    GoalStatus,
    Patient,
    PatientStatus,
    StaffRole,
    TreatmentGoal,
    User,
)
from mindtrack.notifications.models import NotificationType
from mindtrack.routers import appointments, health, notifications, patients, realtime
from mindtrack.setup import build_services


ADMIN = {"X-User-Id": "ADM-1", "X-User-Role": "admin"}
SUPERVISOR = {"X-User-Id": "SUP-1", "X-User-Role": "supervisor"}
THERAPIST = {"X-User-Id": "DR-1", "X-User-Role": "therapist"}


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def services(store, email_sender, hub, clock):
    return build_services(store=store, email_sender=email_sender, hub=hub, clock=clock)


@pytest.fixture
def client(services):
    app = FastAPI()
    for module in (health, appointments, patients, notifications, realtime):
        app.include_router(module.router)
    app.state.services = services
    return TestClient(app)


def seed_appointment(store, clock, hours_from_now, status=AppointmentStatus.SCHEDULED, id="A-1"):
    run(store.save_appointment(
        Appointment(
            id=id,
            patient_id="PT-1",
            clinical_id="DR-1",
            appointment_date=clock() + timedelta(hours=hours_from_now),
            status=status,
        )
    ))


def seed_patient(store, goals=0, achieved=0, **kwargs):
    run(store.save_patient(
        Patient(
            id="PT-1",
            first_name="Alex",
            last_name="Rivera",
            assigned_therapist_id="DR-1",
            treatment_goals=[
                TreatmentGoal(
                    description=f"Goal {i}",
                    status=GoalStatus.ACHIEVED if i < achieved else GoalStatus.IN_PROGRESS,
                )
                for i in range(goals)
            ],
            **kwargs,
        )
    ))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Health & identity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["scheduler"]["running"] is False

    def test_services_missing(self):
        app = FastAPI()
        app.include_router(health.router)
        assert TestClient(app).get("/health").status_code == 503

    def test_caller_header_required(self, client):
        assert client.get("/api/notifications").status_code == 422


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Appointments
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAppointmentEndpoints:

    def test_transition_table(self, client):
        table = client.get("/api/appointments/status-transitions").json()["transitions"]
        assert table["completed"] == []
        assert table["no-show"] == ["cancelled", "completed"]

    def test_transition_check(self, client):
        resp = client.get("/api/appointments/status-transitions?from=completed&to=cancelled")
        assert resp.json()["valid"] is False
        resp = client.get("/api/appointments/status-transitions?from=no-show&to=completed")
        assert resp.json()["valid"] is True

    def test_recommendation(self, client, store, clock):
        seed_appointment(store, clock, -2)
        resp = client.get("/api/appointments/A-1/status-recommendation")
        assert resp.status_code == 200
        assert resp.json()["recommended_status"] == "overdue"

    def test_recommendation_missing(self, client):
        assert client.get("/api/appointments/nope/status-recommendation").status_code == 404

    def test_change_status(self, client, store, clock):
        seed_appointment(store, clock, 2)
        resp = client.patch(
            "/api/appointments/A-1/status", json={"status": "cancelled"}, headers=THERAPIST
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

    def test_change_status_illegal(self, client, store, clock):
        seed_appointment(store, clock, 2, status=AppointmentStatus.COMPLETED)
        resp = client.patch(
            "/api/appointments/A-1/status", json={"status": "cancelled"}, headers=THERAPIST
        )
        assert resp.status_code == 400

    def test_change_status_missing(self, client):
        resp = client.patch(
            "/api/appointments/nope/status", json={"status": "cancelled"}, headers=THERAPIST
        )
        assert resp.status_code == 404

    def test_manual_sweep_admin_only(self, client, store, clock):
        seed_appointment(store, clock, -30)
        assert client.post("/api/appointments/update-statuses", headers=THERAPIST).status_code == 403

        resp = client.post("/api/appointments/update-statuses", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updated_count": 1}
        assert client.post("/api/appointments/update-statuses", headers=ADMIN).json()["updated_count"] == 0


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Patients & discharge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestDischargeEndpoints:

    def test_discharge_check(self, client, store):
        seed_patient(store, goals=5, achieved=4)
        resp = client.get("/api/patients/PT-1/discharge-check")
        assert resp.status_code == 200
        assert resp.json()["should_discharge"] is True

    def test_discharge_check_missing(self, client):
        assert client.get("/api/patients/nope/discharge-check").status_code == 404

    def test_auto_discharge(self, client, store):
        seed_patient(store, goals=5, achieved=5)
        resp = client.post("/api/patients/PT-1/auto-discharge", headers=THERAPIST)
        assert resp.json()["success"] is True
        assert run(store.get_patient("PT-1")).status == PatientStatus.DISCHARGED

    def test_goal_update_cascades_into_discharge_check(self, client, store):
        seed_patient(store, goals=5, achieved=3)
        resp = client.patch(
            "/api/patients/PT-1/goals/3", json={"status": "achieved"}, headers=THERAPIST
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["should_check_discharge"] is True
        assert body["discharge_check"]["should_discharge"] is True

    def test_goal_update_without_cascade(self, client, store):
        seed_patient(store, goals=2)
        resp = client.patch(
            "/api/patients/PT-1/goals/0", json={"notes": "Progressing"}, headers=THERAPIST
        )
        assert "discharge_check" not in resp.json()

    def test_goal_index_out_of_range(self, client, store):
        seed_patient(store, goals=2)
        resp = client.patch(
            "/api/patients/PT-1/goals/7", json={"status": "achieved"}, headers=THERAPIST
        )
        assert resp.status_code == 404

    def test_discharge_request_review_flow(self, client, store):
        seed_patient(store)
        created = client.post(
            "/api/patients/PT-1/discharge-requests", json={"reason": "Stable"}, headers=THERAPIST
        )
        assert created.status_code == 201
        rid = created.json()["id"]
        url = f"/api/patients/PT-1/discharge-requests/{rid}/review"

        assert client.post(url, json={"approve": True}, headers=THERAPIST).status_code == 403

        resp = client.post(url, json={"approve": True, "notes": "ok"}, headers=SUPERVISOR)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        assert client.post(url, json={"approve": False}, headers=ADMIN).status_code == 400

    def test_completion_report(self, client, store):
        seed_patient(store, status=PatientStatus.DISCHARGED)
        report = client.get("/api/reports/treatment-completion").json()
        assert report["rate"] == 100
        assert report["breakdown"]["manually_discharged"] == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Notifications
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestNotificationEndpoints:

    def test_feed(self, client, services):
        n = run(services.notifications.create_notification(
            "DR-1", NotificationType.GENERAL, "Hello", "World"
        ))
        run(services.notifications.create_notification(
            "DR-2", NotificationType.GENERAL, "Not yours", "..."
        ))

        feed = client.get("/api/notifications", headers=THERAPIST).json()
        assert [item["id"] for item in feed] == [n.id]
        assert client.get("/api/notifications/unread-count", headers=THERAPIST).json() == {"count": 1}

        assert client.patch(f"/api/notifications/{n.id}/read", headers=THERAPIST).status_code == 200
        assert client.patch(f"/api/notifications/{n.id}/read", headers=THERAPIST).status_code == 404

        stats = client.get("/api/notifications/stats", headers=THERAPIST).json()
        assert stats["total"] == 1
        assert stats["unread"] == 0

        assert client.delete(f"/api/notifications/{n.id}", headers=THERAPIST).status_code == 200
        assert client.delete(f"/api/notifications/{n.id}", headers=THERAPIST).status_code == 404

    def test_read_all(self, client, services):
        run(services.notifications.create_notification("DR-1", NotificationType.GENERAL, "a", "b"))
        resp = client.patch("/api/notifications/read-all", headers=THERAPIST)
        assert resp.json() == {"success": True}

    def test_cleanup_admin_only(self, client, services, clock):
        run(services.notifications.create_notification(
            "DR-1", NotificationType.GENERAL, "a", "b", expires_at=clock() - timedelta(hours=1)
        ))
        assert client.post("/api/notifications/cleanup", headers=THERAPIST).status_code == 403
        assert client.post("/api/notifications/cleanup", headers=ADMIN).json() == {"deleted_count": 1}

    def test_preferences(self, client, store):
        run(store.save_user(User(id="DR-1", role=StaffRole.THERAPIST)))
        assert client.get("/api/notifications/preferences", headers=THERAPIST).json()[
            "email_notifications"
        ] is True

        resp = client.put(
            "/api/notifications/preferences",
            json={"system_alerts": False, "quiet_hours": {"enabled": True, "start": "22:00", "end": "07:00"}},
            headers=THERAPIST,
        )
        assert resp.status_code == 200
        assert resp.json()["system_alerts"] is False

        bad = client.put(
            "/api/notifications/preferences",
            json={"quiet_hours": {"enabled": True, "start": "late", "end": "07:00"}},
            headers=THERAPIST,
        )
        assert bad.status_code == 400

    def test_preferences_unknown_user(self, client):
        assert client.get("/api/notifications/preferences", headers=THERAPIST).status_code == 404


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  WebSocket
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestWebSocket:

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["event"] == "pong"

    def test_typing_relayed_to_other_room_member(self, client):
        with client.websocket_connect("/ws") as typist, client.websocket_connect("/ws") as watcher:
            for ws in (typist, watcher):
                ws.send_json({"type": "join_patient_room", "patientId": "PT-1"})
                ws.send_json({"type": "ping"})
                assert ws.receive_json()["event"] == "pong"

            typist.send_json(
                {"type": "typing_start", "patientId": "PT-1", "userId": "DR-1", "userName": "Dana"}
            )
            message = watcher.receive_json()
            assert message["event"] == "user_typing_start"
            assert message["room"] == "patient_PT-1"
            assert message["payload"]["userName"] == "Dana"

    def test_sweep_broadcast_reaches_socket(self, client, store, clock):
        seed_appointment(store, clock, -2)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["event"] == "pong"

            client.post("/api/appointments/update-statuses", headers=ADMIN)

            events = [ws.receive_json()["event"] for _ in range(2)]
            assert events == ["audit_log_created", "appointment_updated"]

    def test_notification_reaches_authenticated_user(self, client, services):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "authenticate", "userId": "DR-1"})
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["event"] == "pong"

            run(services.notifications.create_notification(
                "DR-1", NotificationType.DIRECTED_NOTE, "Note", "Please review"
            ))
            message = ws.receive_json()
            assert message["event"] == "notification_created"
            assert message["room"] == "user_DR-1"

    def test_discharge_request_reaches_reviewer_room(self, client, store):
        run(store.save_user(User(id="ADM-1", role=StaffRole.ADMIN)))
        seed_patient(store)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "authenticate", "userId": "ADM-1"})
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["event"] == "pong"

            client.post(
                "/api/patients/PT-1/discharge-requests", json={"reason": "Stable"}, headers=THERAPIST
            )

            received = [ws.receive_json() for _ in range(3)]
            assert [m["event"] for m in received] == [
                "audit_log_created", "discharge_request_created", "notification_created",
            ]
            assert received[2]["room"] == "user_ADM-1"


class TestErrorTranslation:

    @pytest.mark.parametrize("exc,status", [
        (NotFoundError("gone"), 404),
        (ValidationFailure("bad"), 400),
        (DependencyFailure("bucket down"), 503),
        (RuntimeError("boom"), 500),
    ])
    def test_http_error(self, exc, status):
        assert http_error(exc, "Lookup").status_code == status
