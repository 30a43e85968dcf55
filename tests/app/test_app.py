"""Tests for the HTTP surface: health probes and scheduler status."""

import pytest
from fastapi.testclient import TestClient

from agents.comm_scheduler.dispatcher import Dispatcher
from agents.comm_scheduler.local_store import LocalScheduleStore
from agents.comm_scheduler.scheduler import CommunicationScheduler
from backend.app import create_app
from backend.core.config import settings
from backend.integrations.email_client import LogEmailSender
from backend.integrations.whatsapp_client import LogWhatsAppSender


@pytest.fixture
def scheduler():
    store = LocalScheduleStore()
    dispatcher = Dispatcher(store, LogEmailSender(), LogWhatsAppSender(), base_url="")
    return CommunicationScheduler(store, dispatcher, interval_seconds=3600)


def test_liveness(scheduler):
    with TestClient(create_app(scheduler_factory=lambda: scheduler)) as client:
        assert client.get("/health/live").json() == {"status": "OK"}


def test_readiness_without_database(scheduler):
    with TestClient(create_app(scheduler_factory=lambda: scheduler)) as client:
        body = client.get("/health/ready").json()
    assert body["status"] == "OK"
    assert body["db"] == "SKIPPED"
    assert "version" in body


def test_lifespan_starts_and_stops_scheduler(scheduler):
    with TestClient(create_app(scheduler_factory=lambda: scheduler)) as client:
        assert scheduler.is_started
        body = client.get("/ops/scheduler").json()
        assert body["enabled"] is True
        assert body["started"] is True
        assert body["interval_seconds"] == 3600
    assert not scheduler.is_started


class ClosingWhatsAppSender(LogWhatsAppSender):
    closed = False

    def close(self):
        self.closed = True


def test_shutdown_closes_senders():
    store = LocalScheduleStore()
    whatsapp = ClosingWhatsAppSender()
    dispatcher = Dispatcher(store, LogEmailSender(), whatsapp, base_url="")
    scheduler = CommunicationScheduler(store, dispatcher, interval_seconds=3600)

    with TestClient(create_app(scheduler_factory=lambda: scheduler)):
        assert not whatsapp.closed
    assert whatsapp.closed


def test_scheduler_disabled(monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", False)

    def factory():
        raise AssertionError("scheduler must not be built when disabled")

    with TestClient(create_app(scheduler_factory=factory)) as client:
        body = client.get("/ops/scheduler").json()
    assert body["enabled"] is False
    assert body["last_report"] is None
