"""Telegram Login Widget assertion verification.

The widget posts the user's fields plus ``auth_date`` and ``hash``. The hash
is an HMAC-SHA-256 over the data-check string (the remaining fields as
``key=value`` lines, sorted by key) keyed with a secret derived from the bot
credential.
"""

import hashlib
import hmac
import logging
import re
import time
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

# Assertions older than this are rejected
DEFAULT_MAX_AGE_SECONDS = 60

_HEX64_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def resolve_secret(secret: str) -> bytes:
    """Derive the HMAC key from the configured widget secret.

    - PEM-looking values are used verbatim
    - 64-char hex strings are decoded to their 32 raw bytes
    - anything else (a bot token) is hashed with SHA-256
    """
    if secret.startswith("-----"):
        return secret.encode("utf-8")
    if _HEX64_RE.match(secret):
        return bytes.fromhex(secret)
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _stringify(value: Any) -> str:
    # Match how the widget renders JSON scalars
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_data_check_string(payload: Mapping[str, Any]) -> str:
    """Canonical string the widget signs: sorted ``key=value`` lines."""
    return "\n".join(
        f"{key}={_stringify(payload[key])}"
        for key in sorted(payload)
        if key != "hash" and payload[key] is not None
    )


def sign_telegram_login(payload: Mapping[str, Any], secret: str) -> str:
    """Compute the ``hash`` field for a payload."""
    return hmac.new(
        resolve_secret(secret),
        build_data_check_string(payload).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_telegram_login(
    payload: Mapping[str, Any],
    secret: str,
    now: float | None = None,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
) -> bool:
    """Verify a widget assertion.

    Args:
        payload: Fields as posted by the widget, including ``hash``
        secret: Widget secret or bot token
        now: Verification time as a unix timestamp (defaults to now)
        max_age_seconds: Freshness window for ``auth_date``

    Returns:
        True if the signature matches and the assertion is fresh. Malformed
        payloads return False.
    """
    if not isinstance(payload, Mapping) or not secret:
        return False

    received = payload.get("hash")
    auth_date = payload.get("auth_date")
    if not isinstance(received, str) or not received or auth_date is None or payload.get("id") is None:
        return False

    try:
        auth_ts = float(auth_date)
    except (TypeError, ValueError):
        return False

    expected = sign_telegram_login(payload, secret)
    if not hmac.compare_digest(expected.encode("ascii"), received.lower().encode("ascii", "replace")):
        logger.info(f"Widget assertion signature mismatch for id={payload.get('id')}")
        return False

    current = time.time() if now is None else now
    if abs(current - auth_ts) > max_age_seconds:
        logger.info(f"Widget assertion for id={payload.get('id')} is stale")
        return False

    return True
