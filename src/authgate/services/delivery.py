"""Delivery of one-time codes over the coded-message channel."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from authgate.config import Settings
from authgate.errors import MisconfiguredError

logger = logging.getLogger(__name__)

WHATSAPP_API_BASE = "https://graph.facebook.com/v20.0"


@dataclass
class DeliveryResult:
    """Outcome of a delivery attempt. Failures never raise."""

    delivered: bool
    status_code: int | None = None
    error: Any = None

    @property
    def event(self) -> str:
        """Audit event name for a failed delivery."""
        return "send_failed" if self.status_code is not None else "send_exception"


class DeliveryBackend(ABC):
    """Abstract base class for code delivery backends."""

    @abstractmethod
    async def send(self, phone: str, code: str) -> DeliveryResult:
        """Deliver ``code`` to ``phone``.

        Args:
            phone: E.164 phone number
            code: Plain one-time code

        Returns:
            DeliveryResult with ``delivered`` set
        """
        pass


class ConsoleDeliveryBackend(DeliveryBackend):
    """Delivery backend that logs to console (for development)."""

    async def send(self, phone: str, code: str) -> DeliveryResult:
        """Log the code instead of sending it."""
        logger.info(
            f"\n{'='*60}\n"
            f"CODE (console backend - not sent)\n"
            f"{'='*60}\n"
            f"To: {phone}\n"
            f"Code: {code}\n"
            f"{'='*60}\n"
        )
        return DeliveryResult(delivered=True)


class WhatsAppDeliveryBackend(DeliveryBackend):
    """Delivery backend using a WhatsApp Cloud API message template."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        template_name: str = "auth_otp",
        template_lang: str = "ru",
        timeout: float = 30.0,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.template_name = template_name
        self.template_lang = template_lang
        self.timeout = timeout

    def build_payload(self, phone: str, code: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "template",
            "template": {
                "name": self.template_name,
                "language": {"code": self.template_lang},
                "components": [
                    {
                        "type": "body",
                        "parameters": [{"type": "text", "text": code}],
                    }
                ],
            },
        }

    async def send(self, phone: str, code: str) -> DeliveryResult:
        """Send the code via the WhatsApp Cloud API."""
        if not self.access_token or not self.phone_number_id:
            raise MisconfiguredError("WhatsApp Cloud API is not configured")

        url = f"{WHATSAPP_API_BASE}/{self.phone_number_id}/messages"
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=self.build_payload(phone, code),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                logger.info(f"Code sent via WhatsApp to {phone}")
                return DeliveryResult(delivered=True, status_code=response.status_code)
            except httpx.HTTPStatusError as e:
                logger.error(f"WhatsApp API error: {e.response.status_code} - {e.response.text}")
                return DeliveryResult(
                    delivered=False,
                    status_code=e.response.status_code,
                    error=e.response.text,
                )
            except httpx.HTTPError as e:
                logger.error(f"Failed to send code via WhatsApp to {phone}: {e!r}")
                return DeliveryResult(delivered=False, error=repr(e))


def get_delivery_backend(settings: Settings) -> DeliveryBackend:
    """Get the configured delivery backend."""
    if settings.delivery_backend == "console":
        return ConsoleDeliveryBackend()
    elif settings.delivery_backend == "whatsapp":
        return WhatsAppDeliveryBackend(
            access_token=settings.wa_access_token,
            phone_number_id=settings.wa_phone_number_id,
            template_name=settings.wa_template_name,
            template_lang=settings.wa_template_lang,
        )
    else:
        raise ValueError(f"Unknown delivery backend: {settings.delivery_backend}")
