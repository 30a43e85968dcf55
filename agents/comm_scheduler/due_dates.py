"""Due-date projection and day-offset checks for relative triggers."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from backend.core.config import settings

from .dto import CandidateRecord, CommunicationRule, TriggerType

logger = logging.getLogger(__name__)


def scheduler_tz() -> tzinfo:
    return ZoneInfo(settings.SCHEDULER_TIMEZONE)


def to_local_date(value: date | datetime, tz: tzinfo | None = None) -> date:
    """Truncate a timestamp to its calendar day in the scheduler timezone.

    Naive datetimes are taken as local wall-clock time.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz or scheduler_tz())
        return value.date()
    return value


def project_due_date(record: CandidateRecord, tz: tzinfo | None = None) -> date | None:
    """Return reference date + term length in calendar days.

    Records without a reference date or term length have no due date.
    """
    if record.reference_date is None or record.term_days is None:
        return None
    return to_local_date(record.reference_date, tz) + timedelta(days=int(record.term_days))


def signed_offset_days(
    due_date: date | datetime, today: date | datetime, tz: tzinfo | None = None
) -> int:
    """Whole days from ``today`` until ``due_date`` (negative once overdue)."""
    return (to_local_date(due_date, tz) - to_local_date(today, tz)).days


def matches_due_window(
    rule: CommunicationRule, due_date: date | None, today: date | datetime, tz: tzinfo | None = None
) -> bool:
    """Check a projected due date against a relative trigger's offset.

    days_before_due N: due date is exactly N days ahead.
    days_after_due N: due date was exactly N days ago.
    Offset 0 means "due today" for both types. Negative offsets never match.
    """
    if due_date is None or rule.days_offset is None:
        return False
    if rule.days_offset < 0:
        logger.warning(
            "scheduler_negative_days_offset",
            extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "days_offset": rule.days_offset},
        )
        return False

    offset = signed_offset_days(due_date, today, tz)
    if rule.trigger_type is TriggerType.DAYS_BEFORE_DUE:
        return offset == rule.days_offset
    if rule.trigger_type is TriggerType.DAYS_AFTER_DUE:
        return offset == -rule.days_offset
    return False
