"""Verification session lifecycle.

A session starts ``pending`` and moves forward exactly once, to ``confirmed``
or ``expired``. Every write against a session is conditional on it still being
pending, so two requests racing on the same session cannot both win.
"""

import logging
import re
import secrets
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from authgate.errors import (
    DeliveryFailedError,
    ErrorCode,
    ExpiredError,
    InvalidCodeError,
    InvalidInputError,
    MisconfiguredError,
    NotFoundError,
    NotReadyError,
    RateLimitedError,
)
from authgate.models import (
    MAX_ATTEMPTS,
    AuthChannel,
    AuthSession,
    SessionState,
    SessionStatus,
    as_utc,
    utcnow,
)
from authgate.services.codes import (
    OTP_TTL_SECONDS,
    generate_code,
    hash_code_async,
    is_code_shaped,
    verify_code_async,
)
from authgate.services.delivery import DeliveryBackend
from authgate.services.rate_limit import RateLimiter, RateLimitScope, rate_limit_key
from authgate.services.users import record_audit

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"\+[0-9]{8,15}", re.ASCII)


def validate_phone(value: str | None) -> str:
    """Return ``value`` if it is an E.164 number, else raise ``invalid_phone``."""
    if not isinstance(value, str) or not PHONE_PATTERN.fullmatch(value):
        raise InvalidInputError("Phone must be E.164: + followed by 8-15 digits")
    return value


def generate_session_token() -> str:
    """Opaque correlation token for the bot deep link."""
    return secrets.token_hex(12)


class SessionStore:
    """Persistence for auth sessions.

    Updates are issued as ``UPDATE ... WHERE id = :id AND state = 'pending'``
    and report whether the row matched. Each write is committed immediately.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, auth_session: AuthSession) -> AuthSession:
        self.session.add(auth_session)
        await self.session.commit()
        return auth_session

    async def get(self, session_id: str) -> AuthSession | None:
        stmt = (
            select(AuthSession)
            .where(AuthSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _first_pending(self, *criteria: Any) -> AuthSession | None:
        return await self._latest(AuthSession.state == SessionState.PENDING.value, *criteria)

    async def _latest(self, *criteria: Any) -> AuthSession | None:
        stmt = (
            select(AuthSession)
            .where(*criteria)
            .order_by(AuthSession.created_at.desc())  # type: ignore[attr-defined]
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_latest_pending(self, phone: str, channel: AuthChannel) -> AuthSession | None:
        """Most recently created pending session for a phone on a channel."""
        return await self._first_pending(
            AuthSession.phone == phone,
            AuthSession.channel == channel.value,
        )

    async def find_latest(self, phone: str, channel: AuthChannel) -> AuthSession | None:
        """Most recently created session for a phone on a channel, in any state."""
        return await self._latest(
            AuthSession.phone == phone,
            AuthSession.channel == channel.value,
        )

    async def find_pending_by_token(self, session_token: str) -> AuthSession | None:
        return await self._first_pending(
            AuthSession.session_token == session_token,
            AuthSession.channel == AuthChannel.TELEGRAM_OTP.value,
        )

    async def find_pending_by_chat(self, chat_id: str) -> AuthSession | None:
        return await self._first_pending(
            AuthSession.tg_chat_id == chat_id,
            AuthSession.channel == AuthChannel.TELEGRAM_OTP.value,
        )

    async def _update_pending(self, session_id: str, values: dict[str, Any]) -> bool:
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.id == session_id,  # type: ignore[arg-type]
                AuthSession.state == SessionState.PENDING.value,  # type: ignore[arg-type]
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def update_pending(self, session_id: str, **values: Any) -> bool:
        """Update a session only while it is still pending."""
        return await self._update_pending(session_id, values)

    async def transition(self, session_id: str, to_state: SessionState, **values: Any) -> bool:
        """Move a pending session to ``to_state``.

        Leaving ``pending`` always drops the outstanding code digest.
        """
        if to_state == SessionState.PENDING:
            raise ValueError("Sessions cannot transition back to pending")
        return await self._update_pending(
            session_id, {**values, "state": to_state.value, "token_hash": None}
        )

    async def record_failed_attempt(self, session_id: str) -> bool:
        """Count a wrong guess; the guess that reaches the limit expires the session."""
        locked = AuthSession.attempts + 1 >= MAX_ATTEMPTS
        return await self._update_pending(
            session_id,
            {
                "attempts": AuthSession.attempts + 1,
                "state": case((locked, SessionState.EXPIRED.value), else_=SessionState.PENDING.value),
                "token_hash": case((locked, None), else_=AuthSession.token_hash),
            },
        )

    async def bind_user(self, session_id: str, user_id: str) -> None:
        """Associate the resolved identity with a confirmed session."""
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.id == session_id,  # type: ignore[arg-type]
                AuthSession.state == SessionState.CONFIRMED.value,  # type: ignore[arg-type]
            )
            .values(user_id=user_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def list_sessions(
        self, state: SessionState | None = None, limit: int = 50
    ) -> Sequence[AuthSession]:
        stmt = select(AuthSession).order_by(AuthSession.created_at.desc()).limit(limit)  # type: ignore[attr-defined]
        if state is not None:
            stmt = stmt.where(AuthSession.state == state.value)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def expire_stale(self, now: datetime) -> int:
        """Expire every pending session past its TTL. Returns the count."""
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.state == SessionState.PENDING.value,  # type: ignore[arg-type]
                AuthSession.expires_at < now,  # type: ignore[arg-type]
            )
            .values(state=SessionState.EXPIRED.value, token_hash=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount

    async def count_by_state(self) -> dict[str, int]:
        stmt = select(AuthSession.state, func.count()).group_by(AuthSession.state)
        result = await self.session.execute(stmt)
        return {state: count for state, count in result.all()}


@dataclass
class CreatedSession:
    """A freshly created pending session."""

    session_id: str
    expires_in: int
    session_token: str | None = None


class SessionEngine:
    """State machine for coded-message and bot-otp sessions."""

    def __init__(
        self,
        store: SessionStore,
        rate_limiter: RateLimiter,
        delivery: DeliveryBackend,
        code_factory: Callable[[], str] = generate_code,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: int = OTP_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.rate_limiter = rate_limiter
        self.delivery = delivery
        self._code_factory = code_factory
        self._clock = clock
        self.ttl_seconds = ttl_seconds

    def _fresh_expiry(self) -> datetime:
        return self._clock() + timedelta(seconds=self.ttl_seconds)

    def _is_past_expiry(self, auth_session: AuthSession) -> bool:
        return self._clock() > as_utc(auth_session.expires_at)

    async def create_coded_session(self, phone: str, ip: str | None = None) -> CreatedSession:
        """Start a WhatsApp verification and deliver the code.

        Raises:
            InvalidInputError: phone is not E.164
            RateLimitedError: phone or caller address exceeded its hourly limit
            DeliveryFailedError: the code could not be delivered
            MisconfiguredError: delivery is not configured
        """
        phone = validate_phone(phone)

        if not await self.rate_limiter.allow(rate_limit_key(RateLimitScope.PHONE, phone)):
            raise RateLimitedError("Too many code requests for this phone")
        if ip and not await self.rate_limiter.allow(rate_limit_key(RateLimitScope.ADDR, ip)):
            raise RateLimitedError("Too many code requests from this address")

        code = self._code_factory()
        auth_session = await self.store.create(
            AuthSession(
                channel=AuthChannel.WHATSAPP.value,
                phone=phone,
                token_hash=await hash_code_async(code),
                state=SessionState.PENDING.value,
                expires_at=self._fresh_expiry(),
            )
        )
        session_id = auth_session.id

        try:
            result = await self.delivery.send(phone, code)
        except MisconfiguredError:
            await self.store.transition(session_id, SessionState.EXPIRED)
            raise
        except Exception:
            logger.exception(f"Delivery backend raised for session {session_id}")
            result = None

        if result is None or not result.delivered:
            await self.store.transition(session_id, SessionState.EXPIRED)
            await record_audit(
                self.store.session,
                AuthChannel.WHATSAPP,
                result.event if result else "send_exception",
                {
                    "phone": phone,
                    "session_id": session_id,
                    "status": result.status_code if result else None,
                    "error": str(result.error) if result and result.error is not None else None,
                },
            )
            raise DeliveryFailedError(f"Could not deliver code for session {session_id}")

        logger.info(f"Created coded session {session_id}")
        return CreatedSession(session_id=session_id, expires_in=self.ttl_seconds)

    async def create_bot_session(self, phone: str | None = None) -> CreatedSession:
        """Start a bot verification. No code exists until a phone is shared."""
        if phone is not None:
            phone = validate_phone(phone)

        auth_session = await self.store.create(
            AuthSession(
                channel=AuthChannel.TELEGRAM_OTP.value,
                phone=phone,
                state=SessionState.PENDING.value,
                expires_at=self._fresh_expiry(),
                session_token=generate_session_token(),
            )
        )
        logger.info(f"Created bot session {auth_session.id}")
        return CreatedSession(
            session_id=auth_session.id,
            expires_in=self.ttl_seconds,
            session_token=auth_session.session_token,
        )

    async def issue_code(self, auth_session: AuthSession, phone: str) -> str:
        """Put a new code into an existing pending session.

        Resets attempts and re-derives the expiry; no new row is created.
        Returns the plain code for the caller to deliver.
        """
        phone = validate_phone(phone)

        if self._is_past_expiry(auth_session):
            await self.store.transition(auth_session.id, SessionState.EXPIRED)
            raise ExpiredError(f"Session {auth_session.id} expired before a code was issued")

        code = self._code_factory()
        issued = await self.store.update_pending(
            auth_session.id,
            phone=phone,
            token_hash=await hash_code_async(code),
            attempts=0,
            expires_at=self._fresh_expiry(),
        )
        if not issued:
            raise NotFoundError(f"Session {auth_session.id} is no longer pending")

        logger.info(f"Issued code into session {auth_session.id}")
        return code

    async def _lookup(
        self,
        channel: AuthChannel,
        phone: str | None,
        session_id: str | None,
    ) -> AuthSession:
        if session_id:
            auth_session = await self.store.get(session_id)
            if (
                auth_session is None
                or auth_session.channel != channel.value
                or (phone and auth_session.phone and auth_session.phone != phone)
            ):
                raise NotFoundError("No pending session with this id")
            self._reject_spent(auth_session)
            return auth_session

        if phone:
            auth_session = await self.store.find_latest_pending(phone, channel)
            if auth_session is None:
                latest = await self.store.find_latest(phone, channel)
                if latest is not None:
                    self._reject_spent(latest)
                raise NotFoundError("No pending session for this phone")
            return auth_session

        raise InvalidInputError("A phone or a session id is required", code=ErrorCode.INVALID_OTP)

    @staticmethod
    def _reject_spent(auth_session: AuthSession) -> None:
        # A confirmed session means its code was already used; expired ones are gone
        if auth_session.state == SessionState.CONFIRMED:
            raise InvalidCodeError(f"Code for session {auth_session.id} was already used")
        if not auth_session.is_pending:
            raise NotFoundError(f"Session {auth_session.id} is no longer pending")

    async def verify(
        self,
        code: str,
        *,
        phone: str | None = None,
        session_id: str | None = None,
        channel: AuthChannel = AuthChannel.WHATSAPP,
    ) -> AuthSession:
        """Check a submitted code and confirm the session on success.

        Raises:
            InvalidInputError: code is not six digits, or no lookup key given
            NotFoundError: no matching pending session
            NotReadyError: bot session has no code yet
            InvalidCodeError: wrong code, attempt limit reached, or code already used
            ExpiredError: session is past its TTL
        """
        if channel == AuthChannel.TELEGRAM:
            raise InvalidInputError("Widget logins have no session", code=ErrorCode.INVALID_OTP)
        if not isinstance(code, str) or not is_code_shaped(code):
            raise InvalidInputError("Code must be six digits", code=ErrorCode.INVALID_OTP)

        auth_session = await self._lookup(channel, phone, session_id)

        if not auth_session.token_hash:
            if channel == AuthChannel.TELEGRAM_OTP:
                raise NotReadyError(f"Session {auth_session.id} has no code yet")
            raise NotFoundError(f"Session {auth_session.id} has no code")

        if auth_session.attempts >= MAX_ATTEMPTS:
            await self.store.transition(auth_session.id, SessionState.EXPIRED)
            raise InvalidCodeError(f"Session {auth_session.id} is locked")

        if self._is_past_expiry(auth_session):
            await self.store.transition(auth_session.id, SessionState.EXPIRED)
            raise ExpiredError(f"Session {auth_session.id} expired")

        if not await verify_code_async(auth_session.token_hash, code):
            await self.store.record_failed_attempt(auth_session.id)
            raise InvalidCodeError(f"Wrong code for session {auth_session.id}")

        if not await self.store.transition(auth_session.id, SessionState.CONFIRMED):
            # Another request confirmed or expired it first
            raise InvalidCodeError(f"Session {auth_session.id} is no longer pending")

        confirmed = await self.store.get(auth_session.id)
        if confirmed is None:
            raise NotFoundError(f"Session {auth_session.id} vanished after confirmation")
        logger.info(f"Confirmed session {confirmed.id}")
        return confirmed

    async def status(self, session_id: str) -> SessionStatus:
        """Read a session's state, expiring it first if it is past its TTL."""
        auth_session = await self.store.get(session_id)
        if auth_session is None:
            raise NotFoundError("Unknown session")

        if auth_session.is_pending and self._is_past_expiry(auth_session):
            await self.store.transition(auth_session.id, SessionState.EXPIRED)
            auth_session = await self.store.get(session_id) or auth_session

        return SessionStatus(
            state=auth_session.state,
            channel=auth_session.channel,
            phone=auth_session.phone,
        )

    async def expire_stale(self) -> int:
        """Apply lazy expiry to every overdue pending session at once."""
        return await self.store.expire_stale(self._clock())
