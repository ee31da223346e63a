"""Logging configuration based on environment."""

import logging
import re
import sys

from authgate.api.middleware import RequestContextFilter
from authgate.config import Settings

# Development format: cleaner
DEV_FORMAT = "%(levelname)s:     %(name)s - %(message)s"

# Production format: timestamps and the request id for correlating lines
PROD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s [%(request_id)s] - %(message)s"

_PHONE_RE = re.compile(r"\+[0-9]{5,12}([0-9]{3})(?![0-9])", re.ASCII)

# Loggers that repeat every HTTP or SQL round trip at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def mask_phones(text: str) -> str:
    """Hide all but the last three digits of any E.164 number in ``text``."""
    return _PHONE_RE.sub(lambda m: f"+***{m.group(1)}", text)


class PhoneMaskingFormatter(logging.Formatter):
    """Formatter that keeps verified phone numbers out of shipped logs."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_phones(super().format(record))


def build_handler(settings: Settings) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    if settings.is_development:
        handler.setFormatter(logging.Formatter(DEV_FORMAT))
    else:
        handler.setFormatter(PhoneMaskingFormatter(PROD_FORMAT))
    return handler


def setup_logging(settings: Settings) -> None:
    """Configure logging for the application.

    Uvicorn's own loggers propagate to the root handler, so run it with
    ``log_config=None``.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        handlers=[build_handler(settings)],
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
