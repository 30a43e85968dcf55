"""In-process schedule store for operate dry runs.

Hydrates rules, pending invoices, templates and tenant transport settings
from a YAML fixture so the scheduler can be exercised end to end without a
database. ``last_run_at`` writes are kept in memory and listed in ``runs``.
"""

from __future__ import annotations

import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

import yaml

from backend.core.config import settings

from .dto import (
    CandidateRecord,
    CommunicationRule,
    CompanyProfile,
    EmailTemplate,
    EmailTransportConfig,
    WhatsAppTransportConfig,
    ensure_utc,
)


class LocalScheduleStore:
    """ScheduleStore held entirely in memory."""

    def __init__(
        self,
        rules: Iterable[CommunicationRule] = (),
        records: Iterable[CandidateRecord] = (),
        email_templates: Iterable[EmailTemplate] = (),
        email_configs: Iterable[EmailTransportConfig] = (),
        whatsapp_configs: Iterable[WhatsAppTransportConfig] = (),
        company_profiles: Iterable[CompanyProfile] = (),
        pending_status: str | None = None,
    ):
        self.rules: dict[str, CommunicationRule] = {r.id: r for r in rules}
        self.records: list[CandidateRecord] = list(records)
        self.email_templates = {(t.tenant_id, t.id): t for t in email_templates}
        self.email_configs = {c.tenant_id: c for c in email_configs}
        self.whatsapp_configs = {c.tenant_id: c for c in whatsapp_configs}
        self.company_profiles = {p.tenant_id: p for p in company_profiles}
        self.pending_status = pending_status or settings.SCHEDULER_PENDING_STATUS
        self.runs: list[tuple[str, datetime]] = []
        self._lock = threading.Lock()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "LocalScheduleStore":
        """Load a fixture file with ``rules``, ``records``, ``email_templates``,
        ``email_configs``, ``whatsapp_configs`` and ``company_profiles`` lists."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid fixture format: {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocalScheduleStore":
        return cls(
            rules=[CommunicationRule.from_dict(r) for r in data.get("rules") or []],
            records=[_record_from_dict(r) for r in data.get("records") or []],
            email_templates=[
                EmailTemplate(
                    id=str(t["id"]),
                    tenant_id=str(t["tenant_id"]),
                    subject=t.get("subject", ""),
                    body=t.get("body", ""),
                    module=t.get("module"),
                    name=t.get("name"),
                )
                for t in data.get("email_templates") or []
            ],
            email_configs=[EmailTransportConfig(**c) for c in data.get("email_configs") or []],
            whatsapp_configs=[WhatsAppTransportConfig(**c) for c in data.get("whatsapp_configs") or []],
            company_profiles=[CompanyProfile(**p) for p in data.get("company_profiles") or []],
        )

    def list_active_rules(self) -> list[CommunicationRule]:
        with self._lock:
            return [r for r in self.rules.values() if r.is_active]

    def list_pending_records(self, tenant_id: str, module: str) -> list[CandidateRecord]:
        return [
            r for r in self.records
            if r.tenant_id == tenant_id and r.status == self.pending_status
        ]

    def get_email_template(self, tenant_id: str, template_id: str) -> EmailTemplate | None:
        return self.email_templates.get((tenant_id, template_id))

    def get_email_config(self, tenant_id: str) -> EmailTransportConfig | None:
        return self.email_configs.get(tenant_id)

    def get_whatsapp_config(self, tenant_id: str) -> WhatsAppTransportConfig | None:
        return self.whatsapp_configs.get(tenant_id)

    def get_company_profile(self, tenant_id: str) -> CompanyProfile | None:
        return self.company_profiles.get(tenant_id)

    def persist_last_run(self, rule_id: str, timestamp: datetime) -> None:
        with self._lock:
            rule = self.rules.get(rule_id)
            if rule is None:
                raise KeyError(f"Unknown schedule rule: {rule_id}")
            rule.last_run_at = timestamp
            rule.updated_at = timestamp
            self.runs.append((rule_id, timestamp))


def _record_from_dict(data: dict[str, Any]) -> CandidateRecord:
    reference = data.get("reference_date")
    if isinstance(reference, str):
        reference = datetime.fromisoformat(reference.replace("Z", "+00:00"))
    if isinstance(reference, datetime):
        reference = ensure_utc(reference)
    elif reference is not None and not isinstance(reference, date):
        raise ValueError(f"Invalid reference_date: {reference!r}")

    amount = data.get("amount")
    return CandidateRecord(
        record_id=str(data["record_id"]),
        tenant_id=str(data["tenant_id"]),
        reference_date=reference,
        term_days=data.get("term_days"),
        amount=Decimal(str(amount)) if amount is not None else None,
        category=data.get("category"),
        email=data.get("email"),
        phone=None if data.get("phone") is None else str(data["phone"]),
        status=data.get("status", "Pending"),
        customer_name=data.get("customer_name"),
        document_number=data.get("document_number"),
    )
