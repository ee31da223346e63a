"""Telegram bot webhook."""

import hmac
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from authgate.api.deps import BotDriverDep, SettingsDep
from authgate.models import AuthChannel
from authgate.services.bot import parse_update

logger = logging.getLogger(__name__)

router = APIRouter()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.post("/webhook")
async def telegram_webhook(request: Request, settings: SettingsDep, driver: BotDriverDep):
    """
    Receive bot updates.

    Once the update is accepted the response is always ``{"ok": true}`` so
    Telegram does not redeliver it.
    """
    if settings.tg_webhook_secret:
        received = request.headers.get(SECRET_HEADER, "")
        if not hmac.compare_digest(received.encode(), settings.tg_webhook_secret.encode()):
            logger.warning("Rejected webhook call with a bad secret token")
            return JSONResponse(status_code=403, content={"ok": False})

    try:
        update = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"ok": False})
    if not isinstance(update, dict):
        return JSONResponse(status_code=400, content={"ok": False})

    if AuthChannel.TELEGRAM_OTP.value not in settings.auth_providers:
        logger.debug("Bot channel disabled, ignoring update")
        return {"ok": True}

    event = parse_update(update)
    if event is None:
        logger.debug(f"Ignoring update {update.get('update_id')}")
        return {"ok": True}

    try:
        reply = await driver.handle(event)
        logger.info(f"Handled {type(event).__name__} for chat {event.chat_id} (sent={reply.sent})")
    except Exception:
        logger.exception(f"Failed to handle update {update.get('update_id')}")

    return {"ok": True}
