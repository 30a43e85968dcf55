"""Tests for recipient resolution."""

import logging
from datetime import UTC, date, datetime

import pytest

from agents.comm_scheduler.dto import TriggerType
from agents.comm_scheduler.resolver import RecipientQueryError, RecipientResolver
from tests.comm_scheduler.factories import NOW, make_record, make_rule, make_store


@pytest.fixture
def records():
    # Due dates relative to NOW (2025-03-15): inv-1 overdue 7 days, inv-2 due in 3 days,
    # inv-3 overdue 8 days, inv-4 without payment terms.
    return [
        make_record("inv-1", reference_date=date(2025, 2, 6), term_days=30, category="Retail"),
        make_record("inv-2", reference_date=date(2025, 3, 3), term_days=15, category="Wholesale"),
        make_record("inv-3", reference_date=date(2025, 2, 5), term_days=30, category="Retail"),
        make_record("inv-4", reference_date=date(2025, 3, 1), term_days=None, category="Retail"),
    ]


def _resolver(store):
    return RecipientResolver(store, modules={"invoices", "debtors"})


class TestRecipientResolver:
    def test_days_after_due_selects_exact_offset(self, records):
        store = make_store(records=records)
        result = _resolver(store).resolve(make_rule(days_offset=7), NOW)
        assert [r.record_id for r in result] == ["inv-1"]
        assert result[0].due_date == date(2025, 3, 8)

    def test_days_before_due_selects_exact_offset(self, records):
        store = make_store(records=records)
        rule = make_rule(trigger_type=TriggerType.DAYS_BEFORE_DUE, days_offset=3)
        result = _resolver(store).resolve(rule, NOW)
        assert [r.record_id for r in result] == ["inv-2"]

    def test_resolved_records_are_copies(self, records):
        store = make_store(records=records)
        _resolver(store).resolve(make_rule(days_offset=7), NOW)
        assert all(r.due_date is None for r in store.records)

    def test_specific_datetime_addresses_every_filtered_record(self, records):
        store = make_store(records=records)
        rule = make_rule(
            trigger_type=TriggerType.SPECIFIC_DATETIME,
            days_offset=None,
            scheduled_at=datetime(2025, 3, 15, 8, 0, tzinfo=UTC),
            filter_condition="(Retail)",
        )
        result = _resolver(store).resolve(rule, NOW)
        assert sorted(r.record_id for r in result) == ["inv-1", "inv-3", "inv-4"]

    def test_category_filter_applies_to_relative_rules(self, records):
        store = make_store(records=records)
        rule = make_rule(days_offset=7, filter_condition="(Wholesale)")
        assert _resolver(store).resolve(rule, NOW) == []

    def test_malformed_filter_fails_open_with_warning(self, records, caplog):
        store = make_store(records=records)
        rule = make_rule(days_offset=7, filter_condition="(???)")
        with caplog.at_level(logging.WARNING, logger="agents.comm_scheduler.resolver"):
            result = _resolver(store).resolve(rule, NOW)
        assert [r.record_id for r in result] == ["inv-1"]
        assert any(rec.getMessage() == "scheduler_filter_fail_open" for rec in caplog.records)

    def test_record_without_terms_never_qualifies_for_relative_rules(self, records):
        store = make_store(records=records)
        for offset in range(0, 30):
            for trigger in (TriggerType.DAYS_BEFORE_DUE, TriggerType.DAYS_AFTER_DUE):
                rule = make_rule(trigger_type=trigger, days_offset=offset)
                assert "inv-4" not in [r.record_id for r in _resolver(store).resolve(rule, NOW)]

    def test_only_pending_records_of_the_rule_tenant(self):
        store = make_store(
            records=[
                make_record("inv-1"),
                make_record("inv-paid", status="Paid"),
                make_record("inv-other", tenant_id="tenant-b"),
            ]
        )
        result = _resolver(store).resolve(make_rule(days_offset=7), NOW)
        assert [r.record_id for r in result] == ["inv-1"]

    def test_debtors_module_uses_invoice_ledger(self, records):
        store = make_store(records=records)
        result = _resolver(store).resolve(make_rule(module="debtors", days_offset=7), NOW)
        assert [r.record_id for r in result] == ["inv-1"]

    def test_unsupported_module_resolves_nothing(self, records, caplog):
        store = make_store(records=records)
        with caplog.at_level(logging.WARNING, logger="agents.comm_scheduler.resolver"):
            result = _resolver(store).resolve(make_rule(module="quotations", days_offset=7), NOW)
        assert result == []
        assert any(rec.getMessage() == "scheduler_module_unsupported" for rec in caplog.records)

    def test_query_failure_raises_recipient_query_error(self, monkeypatch):
        store = make_store()

        def boom(tenant_id, module):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(store, "list_pending_records", boom)
        with pytest.raises(RecipientQueryError) as exc_info:
            _resolver(store).resolve(make_rule(), NOW)
        assert exc_info.value.rule_id == "rule-1"
        assert isinstance(exc_info.value.cause, RuntimeError)
