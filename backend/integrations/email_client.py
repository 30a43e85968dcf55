"""SMTP e-mail transport for scheduled communications.

Each tenant brings its own SMTP account; the sender opens one connection per
message. Supports a log-only sender for dry runs.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Protocol
from uuid import uuid4

from agents.comm_scheduler.dto import EmailTransportConfig, SendResult
from backend.core.config import settings


class EmailSender(Protocol):
    name: str

    def send_email(
        self, config: EmailTransportConfig, to: str, subject: str, body: str
    ) -> SendResult: ...


def build_message(config: EmailTransportConfig, to: str, subject: str, body: str) -> EmailMessage:
    """Build an HTML message with the tenant's sender identity."""
    msg = EmailMessage()
    msg["From"] = formataddr((config.from_name or "", config.from_email))
    msg["To"] = to
    msg["Subject"] = subject
    domain = config.from_email.partition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(body, subtype="html")
    return msg


class SmtpEmailSender:
    """Send mail through the tenant's SMTP server.

    Port 465 uses implicit TLS, any other port upgrades with STARTTLS when
    the server offers it.
    """

    name = "smtp"

    def __init__(self, timeout_s: int | None = None):
        self.timeout_s = timeout_s or settings.SMTP_TIMEOUT_S
        self.logger = logging.getLogger(__name__)

    def _connect(self, config: EmailTransportConfig) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if config.smtp_port == 465:
            return smtplib.SMTP_SSL(
                config.smtp_host, config.smtp_port, timeout=self.timeout_s, context=context
            )
        smtp = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=self.timeout_s)
        smtp.ehlo()
        if smtp.has_extn("starttls"):
            smtp.starttls(context=context)
            smtp.ehlo()
        return smtp

    def send_email(
        self, config: EmailTransportConfig, to: str, subject: str, body: str
    ) -> SendResult:
        msg = build_message(config, to, subject, body)
        try:
            with self._connect(config) as smtp:
                if config.smtp_user:
                    smtp.login(config.smtp_user, config.smtp_password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(
                "smtp_send_failed",
                extra={"tenant_id": config.tenant_id, "to": to, "error": str(e)},
            )
            return SendResult(ok=False, error=f"smtp_error: {e}")

        self.logger.info(
            "smtp_sent",
            extra={"tenant_id": config.tenant_id, "to": to, "message_id": msg["Message-ID"]},
        )
        return SendResult(ok=True, message_id=msg["Message-ID"])


class LogEmailSender:
    """Dry-run sender: logs the message instead of delivering it."""

    name = "log"

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.sent: list[tuple[str, str]] = []

    def send_email(
        self, config: EmailTransportConfig, to: str, subject: str, body: str
    ) -> SendResult:
        self.logger.info(
            "DRY-RUN: would send email",
            extra={
                "tenant_id": config.tenant_id,
                "to": to,
                "subject": subject[:50] + "..." if len(subject) > 50 else subject,
                "dry_run": True,
            },
        )
        self.sent.append((to, subject))
        return SendResult(ok=True, message_id=f"dry-run-{uuid4()}")
