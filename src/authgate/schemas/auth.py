"""Request and response bodies for the auth endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from authgate.models import UserRead


class RequestCodeBody(BaseModel):
    """Request a WhatsApp code."""

    phone: str = Field(pattern=r"^\+[0-9]{8,15}$", description="E.164 phone number")


class BotRequestBody(BaseModel):
    """Request a bot handshake. The phone can be supplied later in the chat."""

    phone: str | None = Field(default=None, pattern=r"^\+[0-9]{8,15}$")


class VerifyBody(BaseModel):
    """Submit a code for a WhatsApp or bot session."""

    otp: str = Field(min_length=6, max_length=6)
    phone: str | None = None
    session_id: str | None = None
    channel: Literal["wa", "tg-otp"] = "wa"


class TelegramLoginBody(BaseModel):
    """Login widget assertion. Unknown fields are kept: they are signed too."""

    model_config = ConfigDict(extra="allow")

    id: int
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    photo_url: str | None = None
    auth_date: int
    hash: str

    def signed_fields(self) -> dict:
        """Fields exactly as posted, for signature verification."""
        return self.model_dump(exclude_none=True)


class CodeRequestedResponse(BaseModel):
    session_id: str
    expires_in: int


class BotRequestedResponse(BaseModel):
    session_id: str
    bot_link: str
    expires_in: int


class StatusResponse(BaseModel):
    state: str
    channel: str
    phone: str | None = None


class TokenResponse(BaseModel):
    """Response containing the access token."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class ErrorResponse(BaseModel):
    """Error body: the machine-readable code only."""

    error: str
