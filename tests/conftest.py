"""
Shared fixtures for the MindTrack test suite.
Everything runs in-process: in-memory store, fixed clock, recording
email sender and fake WebSocket sessions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mindtrack.infrastructure.store import InMemoryClinicStore
from mindtrack.lifecycle.audit import AuditTrail
from mindtrack.notifications.dispatchers.base import EmailSender
from mindtrack.realtime.hub import ClientSession, FanoutHub

NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingEmailSender(EmailSender):
    """Collects every send() call; result configurable per test."""

    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[tuple[str, str, dict]] = []

    async def send(self, template_kind, recipient, payload):
        self.sent.append((template_kind, recipient, payload))
        return self.result


class FakeSession(ClientSession):
    """Fanout session that records what it receives."""

    def __init__(self, session_id: str, fail: bool = False):
        super().__init__(session_id)
        self.fail = fail
        self.received: list[dict] = []

    async def send_json(self, data):
        if self.fail:
            raise ConnectionError("socket closed")
        self.received.append(data)

    def events(self) -> list[str]:
        return [m["event"] for m in self.received]


@pytest.fixture
def store():
    return InMemoryClinicStore()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def hub():
    return FanoutHub()


@pytest.fixture
def audit(store, hub):
    return AuditTrail(store, hub)


@pytest.fixture
def connected(hub):
    """Factory: connect a FakeSession to the hub and return it."""
    def _connect(session_id: str = "s1", fail: bool = False) -> FakeSession:
        session = FakeSession(session_id, fail=fail)
        hub.connect(session)
        return session
    return _connect
