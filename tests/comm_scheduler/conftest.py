"""Fixtures for the communication scheduler tests."""

import pytest

from agents.comm_scheduler.dispatcher import Dispatcher
from agents.comm_scheduler.resolver import RecipientResolver
from agents.comm_scheduler.scheduler import CommunicationScheduler
from backend.core.observability.metrics import reset_metrics
from tests.comm_scheduler.factories import FakeEmailSender, FakeWhatsAppSender


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def whatsapp_sender():
    return FakeWhatsAppSender()


@pytest.fixture
def build_scheduler(email_sender, whatsapp_sender):
    """Wire a scheduler around a store with the fake senders."""

    def _build(store, email=None, whatsapp=None, **kwargs):
        dispatcher = Dispatcher(store, email or email_sender, whatsapp or whatsapp_sender, base_url="")
        resolver = RecipientResolver(store, modules={"invoices", "debtors"})
        kwargs.setdefault("interval_seconds", 3600)
        kwargs.setdefault("rerun_hours", 24)
        return CommunicationScheduler(store, dispatcher, resolver=resolver, **kwargs)

    return _build
