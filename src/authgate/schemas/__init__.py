"""Pydantic schemas for API requests/responses."""

from authgate.schemas.auth import (
    BotRequestBody,
    BotRequestedResponse,
    CodeRequestedResponse,
    ErrorResponse,
    RequestCodeBody,
    StatusResponse,
    TelegramLoginBody,
    TokenResponse,
    VerifyBody,
)

__all__ = [
    "BotRequestBody",
    "BotRequestedResponse",
    "CodeRequestedResponse",
    "ErrorResponse",
    "RequestCodeBody",
    "StatusResponse",
    "TelegramLoginBody",
    "TokenResponse",
    "VerifyBody",
]
