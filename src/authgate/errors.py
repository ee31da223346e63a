"""Failure conditions raised by the authentication engine.

Every failure maps to exactly one stable machine-readable code. The code is
the only thing rendered to callers; messages stay in the logs.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to API callers."""

    INVALID_PHONE = "invalid_phone"
    INVALID_OTP = "invalid_otp"
    ORIGIN = "origin"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    SEND_FAILED = "send_failed"
    NOT_READY = "not_ready"
    INVALID_SIGNATURE = "invalid_signature"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"


class AuthError(Exception):
    """Base authentication error."""

    code: ErrorCode = ErrorCode.SERVER_ERROR
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        status_code: int | None = None,
    ) -> None:
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message or self.code.value)


class InvalidInputError(AuthError):
    """Malformed phone number, code or request shape."""

    code = ErrorCode.INVALID_PHONE
    status_code = 400


class RateLimitedError(AuthError):
    """Abuse control tripped."""

    code = ErrorCode.RATE_LIMITED
    status_code = 429


class NotFoundError(AuthError):
    """No matching pending session, or the channel is disabled."""

    code = ErrorCode.NOT_FOUND
    status_code = 404


class ExpiredError(AuthError):
    """Session is past its TTL."""

    code = ErrorCode.EXPIRED
    status_code = 400


class InvalidCodeError(AuthError):
    """Wrong code or attempt limit reached. Callers cannot tell which."""

    code = ErrorCode.INVALID_OTP
    status_code = 400


class DeliveryFailedError(AuthError):
    """Outbound message carrying the code could not be sent."""

    code = ErrorCode.SEND_FAILED
    status_code = 400


class NotReadyError(AuthError):
    """Bot session has no code yet: the phone was never shared."""

    code = ErrorCode.NOT_READY
    status_code = 409


class SignatureInvalidError(AuthError):
    """Login widget assertion failed verification."""

    code = ErrorCode.INVALID_SIGNATURE
    status_code = 400


class TokenInvalidError(AuthError):
    """Access token could not be decoded or validated."""

    code = ErrorCode.UNAUTHORIZED
    status_code = 401


class MisconfiguredError(AuthError):
    """Required secret or configuration is missing. A deployment fault."""

    code = ErrorCode.SERVER_ERROR
    status_code = 500


class ServerError(AuthError):
    """Stored state could not be read or written. Not the caller's fault."""

    code = ErrorCode.SERVER_ERROR
    status_code = 500
