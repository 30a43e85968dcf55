"""Channel routing for scheduled communications.

Every dispatch returns a ``DispatchResult``; transport exceptions are caught
and reported as failures so one recipient can never abort a batch.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from backend.core.config import settings
from backend.core.observability.metrics import increment_dispatch_outcome

from .dto import (
    CandidateRecord,
    CommunicationRule,
    CommunicationType,
    CompanyProfile,
    DispatchResult,
    DispatchStatus,
    EmailTransportConfig,
    WhatsAppTransportConfig,
)
from .store import ScheduleStore
from .variables import company_variables, record_variables, render_email, render_whatsapp_message

_MISSING = object()


class Dispatcher:
    """Send one rule's communication to one recipient.

    Tenant transport settings and company profiles are cached per cycle;
    call ``reset_cache`` when a new cycle starts.
    """

    def __init__(self, store: ScheduleStore, email_sender, whatsapp_sender, base_url: str | None = None):
        self.store = store
        self.email_sender = email_sender
        self.whatsapp_sender = whatsapp_sender
        self.base_url = settings.PUBLIC_BASE_URL if base_url is None else base_url
        self.logger = logging.getLogger(__name__)
        self._email_configs: dict[str, EmailTransportConfig | None] = {}
        self._whatsapp_configs: dict[str, WhatsAppTransportConfig | None] = {}
        self._company_profiles: dict[str, CompanyProfile | None] = {}

    def reset_cache(self) -> None:
        self._email_configs.clear()
        self._whatsapp_configs.clear()
        self._company_profiles.clear()

    def close(self) -> None:
        """Release transport resources held by the senders."""
        for sender in (self.email_sender, self.whatsapp_sender):
            close = getattr(sender, "close", None)
            if close is not None:
                close()

    def dispatch(
        self, rule: CommunicationRule, recipient: CandidateRecord, today: date | datetime | None = None
    ) -> DispatchResult:
        """Dispatch and classify the outcome (sent, failed, skipped, not implemented)."""
        channel = rule.communication_type
        contact = recipient.email if channel is CommunicationType.EMAIL else recipient.phone
        if not contact:
            result = self._result(DispatchStatus.SKIPPED, rule, recipient, reason="no_contact_channel")
        else:
            try:
                if channel is CommunicationType.EMAIL:
                    result = self._send_email(rule, recipient, today or datetime.now(UTC))
                elif channel is CommunicationType.WHATSAPP:
                    result = self._send_whatsapp(rule, recipient)
                else:
                    result = self._place_call(rule, recipient)
            except Exception as e:
                self.logger.exception(
                    "dispatch_exception",
                    extra={
                        "rule_id": rule.id,
                        "tenant_id": rule.tenant_id,
                        "record_id": recipient.record_id,
                        "customer_name": recipient.customer_name,
                        "channel": channel.value,
                        "error": str(e),
                    },
                )
                result = self._result(DispatchStatus.FAILED, rule, recipient, reason=f"exception: {e}")

        self._log_result(rule, recipient, result)
        increment_dispatch_outcome(channel.value, result.status.value)
        return result

    def _send_email(
        self, rule: CommunicationRule, recipient: CandidateRecord, today: date | datetime
    ) -> DispatchResult:
        config = self._cached(self._email_configs, rule.tenant_id, self.store.get_email_config)
        if config is None:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason="email_config_missing")

        template = None
        if rule.email_template_id:
            template = self.store.get_email_template(rule.tenant_id, rule.email_template_id)
        if template is None:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason="email_template_missing")

        profile = self._cached(self._company_profiles, rule.tenant_id, self.store.get_company_profile)
        variables = company_variables(profile)
        variables.update(record_variables(recipient, today, self.base_url))
        subject, body = render_email(template, variables)

        sent = self.email_sender.send_email(config, recipient.email, subject, body)
        if not sent.ok:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason=sent.error or "send_failed")
        return self._result(DispatchStatus.SENT, rule, recipient, message_id=sent.message_id)

    def _send_whatsapp(self, rule: CommunicationRule, recipient: CandidateRecord) -> DispatchResult:
        config = self._cached(self._whatsapp_configs, rule.tenant_id, self.store.get_whatsapp_config)
        if config is None:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason="whatsapp_config_missing")
        if not rule.message:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason="message_missing")

        text = render_whatsapp_message(rule.message, recipient)
        sent = self.whatsapp_sender.send_whatsapp(config, recipient.phone, text)
        if not sent.ok:
            return self._result(DispatchStatus.FAILED, rule, recipient, reason=sent.error or "send_failed")
        return self._result(DispatchStatus.SENT, rule, recipient, message_id=sent.message_id)

    def _place_call(self, rule: CommunicationRule, recipient: CandidateRecord) -> DispatchResult:
        # No voice provider integration; record the intent only.
        self.logger.info(
            "call_dispatch_not_implemented",
            extra={
                "rule_id": rule.id,
                "tenant_id": rule.tenant_id,
                "record_id": recipient.record_id,
                "call_template_id": rule.call_template_id,
            },
        )
        return self._result(DispatchStatus.NOT_IMPLEMENTED, rule, recipient, reason="voice_provider_pending")

    @staticmethod
    def _cached(cache: dict, tenant_id: str, loader):
        value = cache.get(tenant_id, _MISSING)
        if value is _MISSING:
            value = loader(tenant_id)
            cache[tenant_id] = value
        return value

    @staticmethod
    def _result(
        status: DispatchStatus,
        rule: CommunicationRule,
        recipient: CandidateRecord,
        reason: str | None = None,
        message_id: str | None = None,
    ) -> DispatchResult:
        return DispatchResult(
            status=status,
            record_id=recipient.record_id,
            channel=rule.communication_type,
            reason=reason,
            message_id=message_id,
        )

    def _log_result(self, rule: CommunicationRule, recipient: CandidateRecord, result: DispatchResult) -> None:
        extra = {
            "rule_id": rule.id,
            "tenant_id": rule.tenant_id,
            "record_id": recipient.record_id,
            "customer_name": recipient.customer_name,
            "channel": result.channel.value,
            "status": result.status.value,
            "reason": result.reason,
        }
        if result.status is DispatchStatus.FAILED:
            self.logger.error("dispatch_failed", extra=extra)
        elif result.status is DispatchStatus.SKIPPED:
            self.logger.info("dispatch_skipped", extra=extra)
        else:
            self.logger.info("dispatch_completed", extra=extra)
