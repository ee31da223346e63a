"""Append-only audit records."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from authgate.models.base import generate_nanoid, utcnow


class LoginEvent(SQLModel, table=True):
    """A credential issuance (or a code send) for a channel."""

    __tablename__ = "login_events"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    user_id: str | None = Field(default=None, foreign_key="users.id", index=True, max_length=21)
    channel: str = Field(max_length=20)
    ip: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=512)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class AuditLog(SQLModel, table=True):
    """Operational event, e.g. a failed delivery."""

    __tablename__ = "audit_logs"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    channel: str = Field(max_length=20)
    event: str = Field(max_length=64, index=True)
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
