"""Wiring of the scheduler with its store and transports."""

from __future__ import annotations

from backend.core.config import settings
from backend.integrations.email_client import LogEmailSender, SmtpEmailSender
from backend.integrations.whatsapp_client import HttpWhatsAppSender, LogWhatsAppSender

from .dispatcher import Dispatcher
from .scheduler import CommunicationScheduler
from .store import ScheduleStore, SqlScheduleStore


def build_senders(dry_run: bool | None = None):
    """Return (email_sender, whatsapp_sender); log-only when dry-running."""
    if settings.SCHEDULER_DRY_RUN if dry_run is None else dry_run:
        return LogEmailSender(), LogWhatsAppSender()
    return SmtpEmailSender(), HttpWhatsAppSender()


def create_scheduler(
    store: ScheduleStore | None = None,
    dry_run: bool | None = None,
    interval_seconds: float | None = None,
) -> CommunicationScheduler:
    """Construct the long-lived scheduler for the hosting process."""
    store = store or SqlScheduleStore()
    email_sender, whatsapp_sender = build_senders(dry_run)
    dispatcher = Dispatcher(store, email_sender, whatsapp_sender)
    return CommunicationScheduler(store, dispatcher, interval_seconds=interval_seconds)
