"""Tests for the YAML-backed local store."""

from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from agents.comm_scheduler.dto import CommunicationType, TriggerType
from agents.comm_scheduler.local_store import LocalScheduleStore

SAMPLE_FIXTURE = Path(__file__).resolve().parents[2] / "tools" / "operate" / "fixtures" / "scheduler_sample.yaml"

FIXTURE = """
rules:
  - id: r1
    tenant_id: t1
    name: Due soon
    module: invoices
    communication_type: whatsapp
    trigger_type: days_before_due
    days_offset: 3
    message: "Hi {customerName}"
  - id: r2
    tenant_id: t1
    module: invoices
    communication_type: email
    trigger_type: specific_datetime
    scheduled_at: "2025-01-01T09:00:00Z"
    is_active: false
records:
  - record_id: inv-1
    tenant_id: t1
    reference_date: 2025-01-10
    term_days: 30
    amount: 1500.50
    phone: 919800000001
  - record_id: inv-2
    tenant_id: t1
    reference_date: "2025-01-12T10:00:00"
    term_days: 15
    status: Paid
email_configs:
  - tenant_id: t1
    smtp_host: smtp.invalid
    from_email: billing@t1.example
"""


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "fixture.yaml"
    path.write_text(FIXTURE, encoding="utf-8")
    return LocalScheduleStore.from_yaml(path)


class TestLocalScheduleStore:
    def test_rules_are_typed(self, store):
        rule = store.rules["r1"]
        assert rule.communication_type is CommunicationType.WHATSAPP
        assert rule.trigger_type is TriggerType.DAYS_BEFORE_DUE
        assert rule.days_offset == 3
        assert store.rules["r2"].scheduled_at == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
        assert store.rules["r2"].name == "r2"

    def test_only_active_rules_are_listed(self, store):
        assert [r.id for r in store.list_active_rules()] == ["r1"]

    def test_records_are_parsed(self, store):
        first, second = store.records
        assert first.reference_date == date(2025, 1, 10)
        assert first.amount == Decimal("1500.5")
        assert first.phone == "919800000001"
        assert second.reference_date == datetime(2025, 1, 12, 10, 0, tzinfo=UTC)

    def test_pending_records_only(self, store):
        assert [r.record_id for r in store.list_pending_records("t1", "invoices")] == ["inv-1"]
        assert store.list_pending_records("t2", "invoices") == []

    def test_transport_lookups(self, store):
        assert store.get_email_config("t1").from_email == "billing@t1.example"
        assert store.get_email_config("t1").smtp_port == 587
        assert store.get_whatsapp_config("t1") is None
        assert store.get_company_profile("t1") is None

    def test_persist_last_run(self, store):
        ts = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
        store.persist_last_run("r1", ts)
        assert store.rules["r1"].last_run_at == ts
        assert store.rules["r1"].updated_at == ts
        assert store.runs == [("r1", ts)]

    def test_persist_unknown_rule(self, store):
        with pytest.raises(KeyError):
            store.persist_last_run("missing", datetime(2025, 3, 1, tzinfo=UTC))

    def test_invalid_fixture(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            LocalScheduleStore.from_yaml(path)


def test_sample_fixture_loads():
    store = LocalScheduleStore.from_yaml(SAMPLE_FIXTURE)
    assert len(store.list_active_rules()) == 3
    assert len(store.records) == 2
    assert store.get_company_profile("tenant-demo").legal_name == "Demo Enterprises Pvt Ltd"
