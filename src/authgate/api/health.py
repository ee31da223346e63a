"""Health check endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from authgate.api.deps import SessionDep, SettingsDep
from authgate.config import Settings
from authgate.models import AuthChannel

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - just confirms the service is running."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    """Health check with database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )


def missing_channel_config(settings: Settings) -> list[str]:
    """Names of settings an enabled channel needs but does not have."""
    missing = []
    providers = settings.auth_providers
    if AuthChannel.TELEGRAM.value in providers and not settings.widget_secret:
        missing.append("tg_bot_secret")
    if AuthChannel.TELEGRAM_OTP.value in providers:
        if not settings.tg_bot_name:
            missing.append("tg_bot_name")
        if settings.bot_transport_backend == "telegram" and not settings.tg_bot_token:
            missing.append("tg_bot_token")
    if AuthChannel.WHATSAPP.value in providers and settings.delivery_backend == "whatsapp":
        if not settings.wa_access_token:
            missing.append("wa_access_token")
        if not settings.wa_phone_number_id:
            missing.append("wa_phone_number_id")
    return missing


@router.get("/ready")
async def readiness_check(session: SessionDep, settings: SettingsDep):
    """Readiness check: database reachable and every enabled channel configured.

    Returns 503 if anything is missing.
    """
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database readiness check failed: {e!r}")
        db_status = "disconnected"

    missing = missing_channel_config(settings)
    response = {
        "status": "ok" if db_status == "connected" and not missing else "degraded",
        "database": db_status,
        "channels": settings.auth_providers,
        "missing_config": missing,
    }
    if response["status"] != "ok":
        return JSONResponse(status_code=503, content=response)
    return response
