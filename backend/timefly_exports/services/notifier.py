"""Delivery channel: transactional e-mail through the Resend HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from timefly_exports.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReceipt:
    """Either ``id`` (accepted by the provider) or ``error`` is set."""

    id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Notifier(Protocol):
    async def send(self, *, sender: str, to: str, subject: str, html: str) -> DeliveryReceipt: ...


class ResendNotifier:
    """
    Minimal Resend client.

    ``send()`` never raises for provider or transport problems; they come back
    as ``DeliveryReceipt(error=...)`` and the caller decides what that means.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ResendNotifier":
        config = config or default_settings
        return cls(
            config.RESEND_API_KEY or "",
            api_url=config.RESEND_API_URL,
            timeout=float(config.EMAIL_TIMEOUT_SECONDS),
        )

    async def send(self, *, sender: str, to: str, subject: str, html: str) -> DeliveryReceipt:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {"from": sender, "to": [to], "subject": subject, "html": html}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.api_url}/emails", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Resend request failed: %s", e)
            return DeliveryReceipt(error=f"Email delivery failed: {e}")

        if not 200 <= resp.status_code < 300:
            detail = _error_detail(resp)
            logger.warning("Resend rejected e-mail (HTTP %s): %s", resp.status_code, detail)
            return DeliveryReceipt(error=f"Email delivery failed: HTTP {resp.status_code}: {detail}")

        try:
            message_id = resp.json().get("id")
        except ValueError:
            message_id = None
        return DeliveryReceipt(id=str(message_id) if message_id else "")


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)
