"""WhatsApp transport for scheduled communications.

Routes a text message to the tenant's configured provider over HTTPS.
Supported providers: meta (Cloud API), twilio, wati and other (custom JSON
endpoint). Supports a log-only sender for dry runs.
"""

import logging
import re
from typing import Any, Protocol
from uuid import uuid4

import httpx

from agents.comm_scheduler.dto import SendResult, WhatsAppTransportConfig
from backend.core.config import settings

_NON_DIGITS = re.compile(r"[^0-9]")


class WhatsAppSender(Protocol):
    name: str

    def send_whatsapp(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult: ...


def _digits(number: str) -> str:
    return _NON_DIGITS.sub("", number or "")


def _error_message(data: Any, fallback: str) -> str:
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        return str(data.get("message") or err or fallback)
    return fallback


class HttpWhatsAppSender:
    """Send WhatsApp text messages through the tenant's provider API."""

    name = "http"

    def __init__(self, client: httpx.Client | None = None, timeout_ms: int | None = None):
        timeout_s = (timeout_ms or settings.WHATSAPP_TIMEOUT_MS) / 1000.0
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_s), verify=True, follow_redirects=False
        )
        self.logger = logging.getLogger(__name__)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def send_whatsapp(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        provider = (config.provider or "").lower()
        handler = {
            "meta": self._send_meta,
            "twilio": self._send_twilio,
            "wati": self._send_wati,
            "other": self._send_custom,
        }.get(provider)
        if handler is None:
            return SendResult(ok=False, error=f"unsupported_provider: {config.provider}")

        try:
            result = handler(config, to, message)
        except httpx.TimeoutException:
            result = SendResult(ok=False, error="timeout")
        except httpx.RequestError as e:
            result = SendResult(ok=False, error=f"network_error: {e}")

        log = self.logger.info if result.ok else self.logger.error
        log(
            "whatsapp_sent" if result.ok else "whatsapp_send_failed",
            extra={
                "tenant_id": config.tenant_id,
                "provider": provider,
                "to": to,
                "message_id": result.message_id,
                "error": result.error,
            },
        )
        return result

    def _post(self, url: str, **kwargs) -> tuple[httpx.Response, Any]:
        resp = self._client.post(url, **kwargs)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return resp, data

    def _send_meta(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        if not config.phone_number_id:
            return SendResult(ok=False, error="config_incomplete: phone_number_id")
        url = (
            f"https://graph.facebook.com/{settings.WHATSAPP_META_API_VERSION}"
            f"/{config.phone_number_id}/messages"
        )
        resp, data = self._post(
            url,
            headers={"Authorization": f"Bearer {config.api_key}"},
            json={
                "messaging_product": "whatsapp",
                "to": _digits(to),
                "type": "text",
                "text": {"body": message},
            },
        )
        if not resp.is_success or (isinstance(data, dict) and data.get("error")):
            return SendResult(ok=False, error=_error_message(data, f"http_{resp.status_code}"))
        messages = data.get("messages") or [{}]
        return SendResult(ok=True, message_id=messages[0].get("id"))

    def _send_twilio(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        if not config.account_sid or not config.api_key:
            return SendResult(ok=False, error="config_incomplete: account_sid/api_key")
        url = f"https://api.twilio.com/2010-04-01/Accounts/{config.account_sid}/Messages.json"
        resp, data = self._post(
            url,
            auth=(config.account_sid, config.api_key),
            data={
                "From": f"whatsapp:{config.from_number}",
                "To": f"whatsapp:{to}",
                "Body": message,
            },
        )
        if not resp.is_success:
            return SendResult(ok=False, error=_error_message(data, f"http_{resp.status_code}"))
        return SendResult(ok=True, message_id=data.get("sid"))

    def _send_wati(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        url = config.api_url or "https://live-server.wati.io/api/v1/sendSessionMessage"
        resp, data = self._post(
            url,
            headers={"Authorization": f"Bearer {config.api_key}"},
            json={"whatsappNumber": _digits(to), "message": message},
        )
        if not resp.is_success:
            return SendResult(ok=False, error=_error_message(data, f"http_{resp.status_code}"))
        return SendResult(ok=True, message_id=data.get("messageId") or data.get("id"))

    def _send_custom(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        if not config.api_url:
            return SendResult(ok=False, error="config_incomplete: api_url")
        resp, data = self._post(
            config.api_url,
            headers={"Authorization": f"Bearer {config.api_key}"},
            json={"to": to, "message": message, "from": config.from_number},
        )
        if not resp.is_success:
            return SendResult(ok=False, error=_error_message(data, f"http_{resp.status_code}"))
        return SendResult(ok=True, message_id=data.get("messageId") or data.get("id"))


class LogWhatsAppSender:
    """Dry-run sender: logs the message instead of delivering it."""

    name = "log"

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.sent: list[tuple[str, str]] = []

    def send_whatsapp(self, config: WhatsAppTransportConfig, to: str, message: str) -> SendResult:
        self.logger.info(
            "DRY-RUN: would send WhatsApp",
            extra={"tenant_id": config.tenant_id, "to": to, "provider": config.provider, "dry_run": True},
        )
        self.sent.append((to, message))
        return SendResult(ok=True, message_id=f"dry-run-{uuid4()}")
