"""User model."""

from sqlmodel import Field, SQLModel

from authgate.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """Resolved identity, keyed by WhatsApp phone or Telegram user id."""

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    wa_phone: str | None = Field(default=None, unique=True, index=True, max_length=16)
    telegram_user_id: str | None = Field(default=None, unique=True, index=True, max_length=64)
    name: str | None = Field(default=None, max_length=255)
    username: str | None = Field(default=None, max_length=255)


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    wa_phone: str | None = None
    telegram_user_id: str | None = None
    name: str | None = None
    username: str | None = None
