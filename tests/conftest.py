"""
Shared Test Fixtures

In-memory store and lease lock, fake channel adapters and payload builders.
"""

from datetime import datetime, timedelta, timezone

import pytest

from notify_outbox.core.channels.fakes import FakeChatAdapter, FakeEmailAdapter, FakeSmsAdapter
from notify_outbox.core.channels.registry import ChannelRegistry
from notify_outbox.core.channels.sms import GatedSmsAdapter
from notify_outbox.core.database.adapter import DatabaseAdapter, DatabaseConfig
from notify_outbox.core.locks.lease import InMemoryLeaseLock
from notify_outbox.core.outbox.dispatcher import Dispatcher
from notify_outbox.core.outbox.retry import RetryController
from notify_outbox.core.outbox.service import NotificationOutbox
from notify_outbox.core.outbox.store import InMemoryOutboxStore
from notify_outbox.core.rendering.context import RenderSettings
from notify_outbox.core.rendering.renderer import Renderer


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 3, 7, 5, 30, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def renderer():
    return Renderer(RenderSettings(brand="도깨비 테니스", base_url="https://shop.test"))


@pytest.fixture
def fake_email():
    return FakeEmailAdapter()


@pytest.fixture
def fake_sms():
    return FakeSmsAdapter()


@pytest.fixture
def fake_chat():
    return FakeChatAdapter()


@pytest.fixture
def channels(fake_email, fake_sms, fake_chat):
    return ChannelRegistry(
        email=fake_email,
        sms=GatedSmsAdapter(fake_sms, enabled=True),
        chat=fake_chat,
    )


@pytest.fixture
def store(renderer, clock):
    return InMemoryOutboxStore(renderer, clock=clock)


@pytest.fixture
def lease_lock(clock):
    return InMemoryLeaseLock(clock=clock)


@pytest.fixture
def dispatcher(store, lease_lock, channels, clock):
    return Dispatcher(store, lease_lock, channels, channel_timeout=0.5, lease_grace=1.0, clock=clock)


@pytest.fixture
def retry_controller(store, dispatcher, clock):
    return RetryController(store, dispatcher, clock=clock)


@pytest.fixture
def outbox(store, lease_lock, dispatcher, retry_controller, channels):
    return NotificationOutbox(
        store=store,
        lease_lock=lease_lock,
        dispatcher=dispatcher,
        retry_controller=retry_controller,
        admin_lock_seconds=30.0,
        channels=channels,
    )


@pytest.fixture
async def sqlite_db():
    """Connected in-memory SQLite adapter."""
    db = DatabaseAdapter(DatabaseConfig(backend="sqlite", sqlite_path=":memory:"))
    await db.connect()
    yield db
    await db.disconnect()


def build_order_payload(order_id: str = "ORD-20260307-0001", **overrides):
    payload = {
        "order_id": order_id,
        "customer": {
            "name": "김도깨비",
            "email": "dokkaebi@example.com",
            "phone": "010-1234-5678",
        },
        "items": [{"name": "Luxilon ALU Power", "quantity": 2}],
        "total_amount": 54000,
        "payment_method": "무통장입금",
    }
    payload.update(overrides)
    return payload


def build_stringing_payload(application_id: str = "app_65f0c0ffee", status: str = "접수완료", **app_overrides):
    application = {
        "application_id": application_id,
        "status": status,
        "contact_phone": "010-9876-5432",
        "shipping_method": "visit",
        "string_details": {
            "preferred_date": "2026-03-07",
            "preferred_time": "14:30",
            "racket_type": "Wilson Blade 98",
            "string_items": [{"name": "RPM Blast", "tension": "48/46"}],
        },
    }
    application.update(app_overrides)
    return {
        "user": {"name": "박테니", "email": "tennis@example.com"},
        "application": application,
    }


@pytest.fixture
def order_payload():
    """Factory: ``order_payload(order_id="X", **overrides)``."""
    return build_order_payload


@pytest.fixture
def stringing_payload():
    """Factory: ``stringing_payload(application_id, status, **application_overrides)``."""
    return build_stringing_payload
