import time

import pytest

from app.infrastructure.kv.memory_store import InMemoryStore


class FakeClock:
    """Manually advanced clock shared by the store and the services under test."""

    def __init__(self, start: float = None):
        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


class RecordingSMS:
    def __init__(self):
        self.sent = []

    def send(self, phone: str, message: str) -> None:
        self.sent.append((phone, message))


class RecordingMessaging:
    business_number = "+6280000000001"

    def __init__(self):
        self.sent = []

    def get_business_number(self) -> str:
        return self.business_number

    def send_message(self, to: str, body: str) -> None:
        self.sent.append((to, body))


class MemoryUserRepo:
    def __init__(self):
        self.users = {}

    def get_by_phone(self, phone):
        return self.users.get(phone)

    def get_by_id(self, user_id):
        return next((u for u in self.users.values() if u.id == user_id), None)

    def create(self, phone, name="User"):
        from datetime import datetime, timezone
        from app.application.ports.user_repo import UserDto

        now = datetime.now(timezone.utc)
        user = UserDto(id=f"user-{len(self.users) + 1}", name=name, phone=phone, is_verified=False,
                       created_at=now, updated_at=now)
        self.users[phone] = user
        return user

    def mark_verified(self, user_id):
        self.get_by_id(user_id).is_verified = True


@pytest.fixture
def api(store):
    """TestClient with the store, providers and user directory swapped for in-memory fakes."""
    from fastapi.testclient import TestClient

    from app import dependencies
    from app.main import app

    sms = RecordingSMS()
    messaging = RecordingMessaging()
    users = MemoryUserRepo()
    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.dependency_overrides[dependencies.get_sms_provider] = lambda: sms
    app.dependency_overrides[dependencies.get_messaging_provider] = lambda: messaging
    app.dependency_overrides[dependencies.get_user_repo] = lambda: users

    client = TestClient(app)
    client.sms = sms
    client.messaging = messaging
    client.users = users
    try:
        yield client
    finally:
        app.dependency_overrides.clear()
