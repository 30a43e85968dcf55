"""Persistence boundary of the communication scheduler.

The engine only reads rules, pending invoices, templates and tenant transport
settings, and writes a rule's ``last_run_at``. ``SqlScheduleStore`` maps those
operations onto SQLAlchemy Core tables owned by the back-office schema.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Protocol

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Engine

from backend.core.config import settings

from .dto import (
    CandidateRecord,
    CommunicationRule,
    CommunicationType,
    CompanyProfile,
    EmailTemplate,
    EmailTransportConfig,
    TriggerType,
    WhatsAppTransportConfig,
    ensure_utc,
)

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    """Collaborator interface consumed by the scheduler."""

    def list_active_rules(self) -> list[CommunicationRule]: ...

    def list_pending_records(self, tenant_id: str, module: str) -> list[CandidateRecord]: ...

    def get_email_template(self, tenant_id: str, template_id: str) -> EmailTemplate | None: ...

    def get_email_config(self, tenant_id: str) -> EmailTransportConfig | None: ...

    def get_whatsapp_config(self, tenant_id: str) -> WhatsAppTransportConfig | None: ...

    def get_company_profile(self, tenant_id: str) -> CompanyProfile | None: ...

    def persist_last_run(self, rule_id: str, timestamp: datetime) -> None: ...


@dataclass(frozen=True)
class ScheduleTables:
    schedules: Table
    invoices: Table
    email_templates: Table
    email_configs: Table
    whatsapp_configs: Table
    company_profiles: Table


def get_schedule_tables(metadata: MetaData) -> ScheduleTables:
    """Return the table definitions read and written by the scheduler."""
    schedules = sa.Table(
        "communication_schedules",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("schedule_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("module", sa.String(), nullable=False),
        sa.Column("communication_type", sa.String(), nullable=False),
        sa.Column("trigger_type", sa.String(), nullable=False),
        sa.Column("scheduled_date_time", sa.DateTime(timezone=True)),
        sa.Column("days_offset", sa.Integer()),
        sa.Column("filter_condition", sa.Text()),
        sa.Column("script_id", sa.String()),
        sa.Column("email_template_id", sa.String()),
        sa.Column("message", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, default=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        extend_existing=True,
    )
    invoices = sa.Table(
        "invoices",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("invoice_number", sa.String()),
        sa.Column("customer_name", sa.String()),
        sa.Column("primary_email", sa.String()),
        sa.Column("primary_mobile", sa.String()),
        sa.Column("category", sa.String()),
        sa.Column("invoice_date", sa.DateTime(timezone=True)),
        sa.Column("payment_terms", sa.Integer()),
        sa.Column("invoice_amount", sa.Numeric(14, 2)),
        sa.Column("status", sa.String()),
        extend_existing=True,
    )
    email_templates = sa.Table(
        "email_templates",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("module", sa.String()),
        sa.Column("name", sa.String()),
        sa.Column("subject", sa.Text()),
        sa.Column("template_content", sa.Text()),
        extend_existing=True,
    )
    email_configs = sa.Table(
        "email_configs",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("smtp_host", sa.String()),
        sa.Column("smtp_port", sa.Integer()),
        sa.Column("smtp_user", sa.String()),
        sa.Column("smtp_password", sa.String()),
        sa.Column("from_email", sa.String()),
        sa.Column("from_name", sa.String()),
        sa.Column("is_active", sa.Boolean(), default=True),
        extend_existing=True,
    )
    whatsapp_configs = sa.Table(
        "whatsapp_configs",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("provider", sa.String()),
        sa.Column("api_key", sa.String()),
        sa.Column("account_sid", sa.String()),
        sa.Column("phone_number_id", sa.String()),
        sa.Column("from_number", sa.String()),
        sa.Column("api_url", sa.String()),
        sa.Column("is_active", sa.Boolean(), default=True),
        extend_existing=True,
    )
    company_profiles = sa.Table(
        "company_profiles",
        metadata,
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("legal_name", sa.String()),
        sa.Column("brand_name", sa.String()),
        sa.Column("reg_address_line1", sa.String()),
        sa.Column("reg_address_line2", sa.String()),
        sa.Column("reg_city", sa.String()),
        sa.Column("reg_state", sa.String()),
        sa.Column("reg_pincode", sa.String()),
        sa.Column("primary_contact_mobile", sa.String()),
        sa.Column("primary_contact_email", sa.String()),
        sa.Column("website", sa.String()),
        sa.Column("gstin", sa.String()),
        sa.Column("logo", sa.Text()),
        extend_existing=True,
    )
    return ScheduleTables(
        schedules=schedules,
        invoices=invoices,
        email_templates=email_templates,
        email_configs=email_configs,
        whatsapp_configs=whatsapp_configs,
        company_profiles=company_profiles,
    )


_METADATA = MetaData()
_TABLES = get_schedule_tables(_METADATA)


@lru_cache(maxsize=1)
def _get_engine() -> Engine:
    """Create (and cache) the SQLAlchemy engine used by the scheduler."""
    return sa.create_engine(settings.database_url, future=True, pool_pre_ping=True)


class SqlScheduleStore:
    """ScheduleStore backed by the relational back-office schema."""

    def __init__(self, engine: Engine | None = None, pending_status: str | None = None):
        self._engine = engine
        self.t = _TABLES
        self.pending_status = pending_status or settings.SCHEDULER_PENDING_STATUS

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = _get_engine()
        return self._engine

    def list_active_rules(self) -> list[CommunicationRule]:
        s = self.t.schedules
        with self.engine.connect() as conn:
            rows = conn.execute(sa.select(s).where(s.c.is_active.is_(True))).mappings().all()

        rules = []
        for row in rows:
            try:
                rules.append(_rule_from_row(row))
            except ValueError as exc:
                logger.warning(
                    "schedule_row_invalid",
                    extra={"rule_id": row["id"], "tenant_id": row["tenant_id"], "error": str(exc)},
                )
        return rules

    def list_pending_records(self, tenant_id: str, module: str) -> list[CandidateRecord]:
        inv = self.t.invoices
        stmt = sa.select(inv).where(inv.c.tenant_id == tenant_id).where(inv.c.status == self.pending_status)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()

        return [
            CandidateRecord(
                record_id=str(row["id"]),
                tenant_id=row["tenant_id"],
                reference_date=_as_utc(row["invoice_date"]),
                term_days=row["payment_terms"],
                amount=Decimal(str(row["invoice_amount"])) if row["invoice_amount"] is not None else None,
                category=row["category"],
                email=row["primary_email"],
                phone=row["primary_mobile"],
                status=row["status"],
                customer_name=row["customer_name"],
                document_number=row["invoice_number"],
            )
            for row in rows
        ]

    def get_email_template(self, tenant_id: str, template_id: str) -> EmailTemplate | None:
        et = self.t.email_templates
        stmt = sa.select(et).where(et.c.tenant_id == tenant_id).where(et.c.id == template_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return EmailTemplate(
            id=str(row["id"]),
            tenant_id=row["tenant_id"],
            subject=row["subject"] or "",
            body=row["template_content"] or "",
            module=row["module"],
            name=row["name"],
        )

    def get_email_config(self, tenant_id: str) -> EmailTransportConfig | None:
        ec = self.t.email_configs
        stmt = (
            sa.select(ec)
            .where(ec.c.tenant_id == tenant_id)
            .where(sa.or_(ec.c.is_active.is_(True), ec.c.is_active.is_(None)))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None or not row["smtp_host"]:
            return None
        return EmailTransportConfig(
            tenant_id=row["tenant_id"],
            smtp_host=row["smtp_host"],
            smtp_port=row["smtp_port"] or 587,
            smtp_user=row["smtp_user"],
            smtp_password=row["smtp_password"],
            from_email=row["from_email"] or "",
            from_name=row["from_name"] or "",
        )

    def get_whatsapp_config(self, tenant_id: str) -> WhatsAppTransportConfig | None:
        wc = self.t.whatsapp_configs
        stmt = (
            sa.select(wc)
            .where(wc.c.tenant_id == tenant_id)
            .where(sa.or_(wc.c.is_active.is_(True), wc.c.is_active.is_(None)))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None or not row["provider"]:
            return None
        return WhatsAppTransportConfig(
            tenant_id=row["tenant_id"],
            provider=row["provider"],
            api_key=row["api_key"],
            account_sid=row["account_sid"],
            phone_number_id=row["phone_number_id"],
            from_number=row["from_number"],
            api_url=row["api_url"],
        )

    def get_company_profile(self, tenant_id: str) -> CompanyProfile | None:
        cp = self.t.company_profiles
        with self.engine.connect() as conn:
            row = conn.execute(sa.select(cp).where(cp.c.tenant_id == tenant_id)).mappings().first()
        if row is None:
            return None
        return CompanyProfile(
            tenant_id=row["tenant_id"],
            legal_name=row["legal_name"],
            brand_name=row["brand_name"],
            address_lines=[
                row[c]
                for c in ("reg_address_line1", "reg_address_line2", "reg_city", "reg_state", "reg_pincode")
                if row[c]
            ],
            phone=row["primary_contact_mobile"],
            email=row["primary_contact_email"],
            website=row["website"],
            gstin=row["gstin"],
            logo=row["logo"],
        )

    def persist_last_run(self, rule_id: str, timestamp: datetime) -> None:
        s = self.t.schedules
        with self.engine.begin() as conn:
            conn.execute(
                sa.update(s).where(s.c.id == rule_id).values(last_run_at=timestamp, updated_at=timestamp)
            )


def _as_utc(value):
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def _rule_from_row(row) -> CommunicationRule:
    trigger_type = TriggerType(row["trigger_type"] or TriggerType.SPECIFIC_DATETIME.value)
    return CommunicationRule(
        id=str(row["id"]),
        tenant_id=row["tenant_id"],
        name=row["schedule_name"],
        description=row["description"],
        module=(row["module"] or "").lower(),
        communication_type=CommunicationType(row["communication_type"]),
        trigger_type=trigger_type,
        scheduled_at=_as_utc(row["scheduled_date_time"]),
        days_offset=row["days_offset"],
        filter_condition=row["filter_condition"],
        call_template_id=row["script_id"],
        email_template_id=row["email_template_id"],
        message=row["message"],
        is_active=bool(row["is_active"]),
        last_run_at=_as_utc(row["last_run_at"]),
        created_at=_as_utc(row["created_at"]),
        updated_at=_as_utc(row["updated_at"]),
    )


__all__ = ["ScheduleStore", "SqlScheduleStore", "get_schedule_tables"]
