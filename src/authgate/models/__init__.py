"""SQLModel database models."""

from authgate.models.auth_session import (
    MAX_ATTEMPTS,
    AuthChannel,
    AuthSession,
    SessionState,
    SessionStatus,
)
from authgate.models.base import TimestampMixin, as_utc, generate_nanoid, utcnow
from authgate.models.login_event import AuditLog, LoginEvent
from authgate.models.user import User, UserRead

__all__ = [
    "MAX_ATTEMPTS",
    "AuditLog",
    "AuthChannel",
    "AuthSession",
    "LoginEvent",
    "SessionState",
    "SessionStatus",
    "TimestampMixin",
    "User",
    "UserRead",
    "as_utc",
    "generate_nanoid",
    "utcnow",
]
