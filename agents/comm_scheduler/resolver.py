"""Recipient resolution for due schedule rules."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, tzinfo

from backend.core.config import settings

from .due_dates import matches_due_window, project_due_date
from .dto import CandidateRecord, CommunicationRule
from .filters import AnyCategory, matches, parse_filter
from .store import ScheduleStore

logger = logging.getLogger(__name__)


class RecipientQueryError(Exception):
    """Candidate records could not be loaded for a rule."""

    def __init__(self, rule_id: str, cause: Exception):
        super().__init__(f"Failed to load candidate records for rule {rule_id}: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class RecipientResolver:
    """Select the concrete recipients of a rule for one cycle.

    Pending records of the rule's tenant are narrowed by the category filter
    and, for relative triggers, by the due-date offset. Specific-datetime rules
    address every record that passes the filter.
    """

    def __init__(self, store: ScheduleStore, modules: set[str] | None = None, tz: tzinfo | None = None):
        self.store = store
        self.modules = modules if modules is not None else settings.scheduler_modules()
        self.tz = tz

    def resolve(self, rule: CommunicationRule, today: date | datetime) -> list[CandidateRecord]:
        """Return the records this rule addresses today.

        Raises:
            RecipientQueryError: If the candidate query fails
        """
        if rule.module.lower() not in self.modules:
            logger.warning(
                "scheduler_module_unsupported",
                extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "rule_module": rule.module},
            )
            return []

        try:
            candidates = self.store.list_pending_records(rule.tenant_id, rule.module)
        except Exception as exc:
            raise RecipientQueryError(rule.id, exc) from exc

        category_filter = parse_filter(rule.filter_condition)
        if isinstance(category_filter, AnyCategory) and category_filter.malformed:
            logger.warning(
                "scheduler_filter_fail_open",
                extra={
                    "rule_id": rule.id,
                    "tenant_id": rule.tenant_id,
                    "filter_condition": rule.filter_condition,
                    "reason": category_filter.reason,
                },
            )

        recipients = []
        for record in candidates:
            due_date = project_due_date(record, self.tz)
            if not matches(record, category_filter):
                continue
            if rule.trigger_type.is_relative and not matches_due_window(rule, due_date, today, self.tz):
                continue
            recipients.append(replace(record, due_date=due_date))

        logger.info(
            "scheduler_recipients_resolved",
            extra={
                "rule_id": rule.id,
                "tenant_id": rule.tenant_id,
                "candidates": len(candidates),
                "recipients": len(recipients),
            },
        )
        return recipients
