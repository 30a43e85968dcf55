"""Data Transfer Objects for the communication scheduler.

Provides type-safe data structures for schedule rules, candidate records,
transport configuration and per-cycle run bookkeeping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class CommunicationType(Enum):
    """Communication channel of a schedule rule."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    CALL = "call"


class TriggerType(Enum):
    """How a rule decides it is due."""
    SPECIFIC_DATETIME = "specific_datetime"
    DAYS_BEFORE_DUE = "days_before_due"
    DAYS_AFTER_DUE = "days_after_due"

    @property
    def is_relative(self) -> bool:
        return self is not TriggerType.SPECIFIC_DATETIME


class DispatchStatus(Enum):
    """Per-recipient dispatch outcome."""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_IMPLEMENTED = "not_implemented"


@dataclass
class CommunicationRule:
    """A persisted schedule rule.

    Only the trigger field matching ``trigger_type`` is meaningful:
    ``scheduled_at`` for specific_datetime, ``days_offset`` for the relative
    types. The engine only ever writes ``last_run_at``.
    """

    id: str
    tenant_id: str
    name: str
    module: str
    communication_type: CommunicationType
    trigger_type: TriggerType
    description: str | None = None
    scheduled_at: datetime | None = None
    days_offset: int | None = None
    filter_condition: str | None = None
    call_template_id: str | None = None
    email_template_id: str | None = None
    message: str | None = None
    is_active: bool = True
    last_run_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "module": self.module,
            "communication_type": self.communication_type.value,
            "trigger_type": self.trigger_type.value,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "days_offset": self.days_offset,
            "filter_condition": self.filter_condition,
            "call_template_id": self.call_template_id,
            "email_template_id": self.email_template_id,
            "message": self.message,
            "is_active": self.is_active,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CommunicationRule":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            tenant_id=str(data["tenant_id"]),
            name=data.get("name") or str(data["id"]),
            description=data.get("description"),
            module=data.get("module", "invoices"),
            communication_type=CommunicationType(data["communication_type"]),
            trigger_type=TriggerType(data["trigger_type"]),
            scheduled_at=_parse_datetime(data.get("scheduled_at")),
            days_offset=data.get("days_offset"),
            filter_condition=data.get("filter_condition"),
            call_template_id=data.get("call_template_id"),
            email_template_id=data.get("email_template_id"),
            message=data.get("message"),
            is_active=bool(data.get("is_active", True)),
            last_run_at=_parse_datetime(data.get("last_run_at")),
        )


@dataclass
class CandidateRecord:
    """Read-only view of an open business document (e.g. an invoice)."""

    record_id: str
    tenant_id: str
    reference_date: date | datetime | None
    term_days: int | None
    amount: Decimal | None = None
    category: str | None = None
    email: str | None = None
    phone: str | None = None
    status: str = "Pending"
    customer_name: str | None = None
    document_number: str | None = None
    # Projected per cycle by the resolver; never persisted
    due_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "tenant_id": self.tenant_id,
            "reference_date": self.reference_date.isoformat() if self.reference_date else None,
            "term_days": self.term_days,
            "amount": str(self.amount) if self.amount is not None else None,
            "category": self.category,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "customer_name": self.customer_name,
            "document_number": self.document_number,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


@dataclass
class EmailTemplate:
    id: str
    tenant_id: str
    subject: str
    body: str
    module: str | None = None
    name: str | None = None


@dataclass
class EmailTransportConfig:
    """Tenant SMTP settings."""

    tenant_id: str
    smtp_host: str
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_email: str = ""
    from_name: str = ""


@dataclass
class WhatsAppTransportConfig:
    """Tenant WhatsApp provider settings."""

    tenant_id: str
    provider: str
    api_key: str | None = None
    account_sid: str | None = None
    phone_number_id: str | None = None
    from_number: str | None = None
    api_url: str | None = None


@dataclass
class CompanyProfile:
    tenant_id: str
    legal_name: str | None = None
    brand_name: str | None = None
    address_lines: list[str] = field(default_factory=list)
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    gstin: str | None = None
    logo: str | None = None


@dataclass
class SendResult:
    """Result of a single transport call."""

    ok: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class DispatchResult:
    """Outcome of dispatching one rule to one recipient."""

    status: DispatchStatus
    record_id: str
    channel: CommunicationType
    reason: str | None = None
    message_id: str | None = None


@dataclass
class RunOutcome:
    """Per-rule, per-cycle tally of dispatch results.

    ``attempted`` counts every recipient handed to the dispatcher. Skipped
    recipients (no contact channel) and stubbed calls are tallied apart from
    ``succeeded`` and ``failed``.
    """

    rule_id: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    not_implemented: int = 0

    def add(self, result: DispatchResult) -> "RunOutcome":
        self.attempted += 1
        if result.status is DispatchStatus.SENT:
            self.succeeded += 1
        elif result.status is DispatchStatus.FAILED:
            self.failed += 1
        elif result.status is DispatchStatus.SKIPPED:
            self.skipped += 1
        else:
            self.not_implemented += 1
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_implemented": self.not_implemented,
        }


@dataclass
class CycleReport:
    """Summary of one poll-evaluate-dispatch cycle."""

    trace_id: str
    started_at: datetime
    rules_loaded: int = 0
    rules_due: int = 0
    outcomes: list[RunOutcome] = field(default_factory=list)
    duration_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "started_at": self.started_at.isoformat(),
            "rules_loaded": self.rules_loaded,
            "rules_due": self.rules_due,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    return ensure_utc(value)
