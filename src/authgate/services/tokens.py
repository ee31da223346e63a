"""Credential issuance: signed, time-boxed JWT access tokens."""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Response
from jose import JWTError, jwt

from authgate.config import Settings
from authgate.errors import TokenInvalidError
from authgate.models import AuthChannel

AUTH_COOKIE_NAME = "auth_token"
DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 7

_TTL_RE = re.compile(r"([0-9]+)([smhd])", re.ASCII)
_TTL_UNITS = {"s": 1, "m": 60, "h": 60 * 60, "d": 60 * 60 * 24}


def parse_ttl(ttl: str) -> int:
    """Convert ``30m`` / ``12h`` / ``7d`` style values to seconds.

    Unparseable values fall back to seven days.
    """
    match = _TTL_RE.fullmatch(ttl.strip())
    if not match:
        return DEFAULT_TTL_SECONDS
    amount, unit = match.groups()
    return int(amount) * _TTL_UNITS[unit]


@dataclass
class IssuedToken:
    """A freshly signed access token."""

    token: str
    expires_in: int


class CredentialIssuer:
    """Mints and validates access tokens.

    Signing key, TTL, issuer and audience come from settings and are fixed for
    the life of the issuer.
    """

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self.issuer = settings.api_url or "auth-service"
        self.audience = settings.app_url or "app"
        self.ttl_seconds = parse_ttl(settings.jwt_ttl)
        self.secure_cookie = settings.is_production

    def issue(self, user_id: str, channel: AuthChannel | str) -> IssuedToken:
        """Create a JWT asserting ``user_id`` authenticated via ``channel``."""
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "channel": AuthChannel(channel).value,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return IssuedToken(token=token, expires_in=self.ttl_seconds)

    def decode(self, token: str) -> dict:
        """Decode and validate a JWT token."""
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError as e:
            raise TokenInvalidError(f"Invalid token: {e}") from e

    def set_auth_cookie(self, response: Response, token: str) -> None:
        """Attach the token as an http-only cookie with a matching max-age."""
        response.set_cookie(
            key=AUTH_COOKIE_NAME,
            value=token,
            max_age=self.ttl_seconds,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookie,
        )

    def clear_auth_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=AUTH_COOKIE_NAME,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookie,
        )
