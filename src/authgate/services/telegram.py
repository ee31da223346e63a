"""Outbound messages to Telegram bot chats."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from authgate.config import Settings

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class BotTransport(ABC):
    """Abstract base class for sending bot messages."""

    @abstractmethod
    async def notify(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> bool:
        """Send a message to a chat.

        Fire-and-forget: failures are logged and reported as False, never raised.
        """
        pass


class ConsoleBotTransport(BotTransport):
    """Bot transport that logs to console (for development)."""

    async def notify(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> bool:
        logger.info(
            f"\n{'='*60}\n"
            f"BOT MESSAGE (console backend - not sent)\n"
            f"{'='*60}\n"
            f"Chat: {chat_id}\n"
            f"{'='*60}\n"
            f"{text}\n"
            f"{'='*60}\n"
        )
        return True


class TelegramBotTransport(BotTransport):
    """Bot transport using the Telegram Bot API ``sendMessage`` method."""

    def __init__(self, bot_token: str, timeout: float = 10.0):
        self.bot_token = bot_token
        self.timeout = timeout

    async def notify(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> bool:
        if not self.bot_token:
            logger.error("Telegram bot token is not configured, dropping message")
            return False

        body: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            body["reply_markup"] = reply_markup

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{TELEGRAM_API_BASE}/bot{self.bot_token}/sendMessage",
                    json=body,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return True
            except httpx.HTTPStatusError as e:
                logger.error(f"Telegram API error: {e.response.status_code} - {e.response.text}")
                return False
            except httpx.HTTPError as e:
                logger.error(f"Failed to send Telegram message to chat {chat_id}: {e!r}")
                return False


def get_bot_transport(settings: Settings) -> BotTransport:
    """Get the configured bot transport."""
    if settings.bot_transport_backend == "console":
        return ConsoleBotTransport()
    elif settings.bot_transport_backend == "telegram":
        return TelegramBotTransport(bot_token=settings.tg_bot_token)
    else:
        raise ValueError(f"Unknown bot transport backend: {settings.bot_transport_backend}")
