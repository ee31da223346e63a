"""AuthSession model: one verification attempt."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Index, String
from sqlmodel import Field, SQLModel

from authgate.models.base import TimestampMixin, generate_nanoid

# Failed verifications allowed before a session locks
MAX_ATTEMPTS = 5


class AuthChannel(str, Enum):
    """Verification pathways. Values are the wire tags."""

    WHATSAPP = "wa"  # coded message
    TELEGRAM = "tg"  # login widget assertion
    TELEGRAM_OTP = "tg-otp"  # bot conversation


class SessionState(str, Enum):
    """Lifecycle of a session. Only pending ever transitions."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


class AuthSession(TimestampMixin, SQLModel, table=True):
    """A verification attempt for the coded-message or bot channel."""

    __tablename__ = "auth_sessions"
    __table_args__ = (Index("ix_auth_sessions_lookup", "phone", "channel", "state"),)

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    channel: str = Field(sa_column=Column(String(20), nullable=False))
    phone: str | None = Field(default=None, max_length=16)

    # Argon2 digest of the outstanding code; cleared on confirmation
    token_hash: str | None = Field(default=None, max_length=255)
    attempts: int = Field(default=0, nullable=False)
    state: str = Field(
        default=SessionState.PENDING.value,
        sa_column=Column(String(20), nullable=False, default=SessionState.PENDING.value),
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    # Bot channel correlation
    session_token: str | None = Field(default=None, max_length=64, unique=True, index=True)
    tg_chat_id: str | None = Field(default=None, max_length=64, index=True)
    tg_user_id: str | None = Field(default=None, max_length=64)

    user_id: str | None = Field(default=None, foreign_key="users.id", max_length=21)

    @property
    def is_pending(self) -> bool:
        return self.state == SessionState.PENDING


class SessionStatus(SQLModel):
    """Read-only view returned by a status query."""

    state: str
    channel: str
    phone: str | None = None
