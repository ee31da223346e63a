"""Verification channels.

Each channel implements ``begin_verification`` and ``complete_verification``;
everything after a successful verification (login event, credential) is
shared and channel-agnostic.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import Settings
from authgate.errors import (
    ErrorCode,
    InvalidInputError,
    MisconfiguredError,
    NotFoundError,
    ServerError,
    SignatureInvalidError,
)
from authgate.models import AuthChannel, AuthSession, User
from authgate.schemas.auth import BotRequestBody, RequestCodeBody, TelegramLoginBody, VerifyBody
from authgate.services.sessions import SessionEngine
from authgate.services.signature import verify_telegram_login
from authgate.services.tokens import CredentialIssuer
from authgate.services.users import (
    format_display_name,
    record_login_event,
    upsert_user_by_phone,
    upsert_user_by_telegram,
)

logger = logging.getLogger(__name__)

BeginRequest = RequestCodeBody | BotRequestBody
Submission = VerifyBody | TelegramLoginBody | Mapping[str, Any]


@dataclass
class RequestContext:
    """Caller details captured by the transport layer."""

    ip: str | None = None
    user_agent: str | None = None
    origin: str | None = None


@dataclass
class VerificationStarted:
    session_id: str
    expires_in: int
    bot_link: str | None = None


@dataclass
class AuthResult:
    """A verified identity and its freshly issued credential."""

    token: str
    expires_in: int
    user: User


class VerificationChannel(ABC):
    """Shared capability of every channel."""

    channel: ClassVar[AuthChannel]

    def __init__(
        self,
        db: AsyncSession,
        engine: SessionEngine,
        issuer: CredentialIssuer,
        settings: Settings,
    ) -> None:
        self.db = db
        self.engine = engine
        self.issuer = issuer
        self.settings = settings

    @abstractmethod
    async def begin_verification(
        self, request: BeginRequest, context: RequestContext
    ) -> VerificationStarted:
        pass

    @abstractmethod
    async def complete_verification(
        self, submission: Submission, context: RequestContext
    ) -> AuthResult:
        pass

    async def _finish_session(
        self,
        auth_session: AuthSession,
        context: RequestContext,
        resolve_user: Callable[[], Awaitable[User]],
    ) -> AuthResult:
        # The session is already confirmed and its digest cleared at this point
        try:
            user = await resolve_user()
            return await self._finish(user, context, session_id=auth_session.id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Could not resolve user for confirmed session {auth_session.id}: {e!r}")
            raise ServerError(f"User resolution failed for session {auth_session.id}") from e

    @staticmethod
    def _verified_phone(auth_session: AuthSession) -> str:
        if not auth_session.phone:
            raise ServerError(f"Confirmed session {auth_session.id} carries no phone")
        return auth_session.phone

    async def _finish(
        self,
        user: User,
        context: RequestContext,
        session_id: str | None = None,
    ) -> AuthResult:
        if session_id:
            await self.engine.store.bind_user(session_id, user.id)
        await record_login_event(
            self.db,
            self.channel,
            user_id=user.id,
            ip=context.ip,
            user_agent=context.user_agent,
        )
        await self.db.commit()

        issued = self.issuer.issue(user.id, self.channel)
        logger.info(f"Issued credential for user {user.id} via {self.channel.value}")
        return AuthResult(token=issued.token, expires_in=issued.expires_in, user=user)


class CodedMessageChannel(VerificationChannel):
    """Six-digit code delivered over WhatsApp."""

    channel = AuthChannel.WHATSAPP

    async def begin_verification(
        self, request: BeginRequest, context: RequestContext
    ) -> VerificationStarted:
        if not isinstance(request, RequestCodeBody):
            raise InvalidInputError("Phone is required")

        created = await self.engine.create_coded_session(request.phone, ip=context.ip)
        await record_login_event(
            self.db, self.channel, ip=context.ip, user_agent=context.user_agent
        )
        await self.db.commit()
        return VerificationStarted(session_id=created.session_id, expires_in=created.expires_in)

    async def complete_verification(
        self, submission: Submission, context: RequestContext
    ) -> AuthResult:
        if not isinstance(submission, VerifyBody):
            raise InvalidInputError("Code submission expected", code=ErrorCode.INVALID_OTP)

        auth_session = await self.engine.verify(
            submission.otp,
            phone=submission.phone,
            session_id=submission.session_id,
            channel=self.channel,
        )
        phone = self._verified_phone(auth_session)
        return await self._finish_session(
            auth_session, context, lambda: upsert_user_by_phone(self.db, phone)
        )


class WidgetChannel(VerificationChannel):
    """Telegram Login Widget: a signed assertion, no session involved."""

    channel = AuthChannel.TELEGRAM

    async def begin_verification(
        self, request: BeginRequest, context: RequestContext
    ) -> VerificationStarted:
        raise InvalidInputError(
            "Widget logins start in the browser", code=ErrorCode.INVALID_SIGNATURE
        )

    async def complete_verification(
        self, submission: Submission, context: RequestContext
    ) -> AuthResult:
        if self.settings.tg_allowed_origin and self.settings.tg_allowed_origin != context.origin:
            raise InvalidInputError("Origin not allowed", code=ErrorCode.ORIGIN)

        if isinstance(submission, TelegramLoginBody):
            fields = submission.signed_fields()
        elif isinstance(submission, Mapping):
            fields = {k: v for k, v in submission.items() if v is not None}
        else:
            raise SignatureInvalidError("Widget assertion expected")

        try:
            assertion = TelegramLoginBody.model_validate(fields)
        except ValidationError as e:
            raise SignatureInvalidError("Malformed widget assertion") from e

        secret = self.settings.widget_secret
        if not secret:
            raise MisconfiguredError("Telegram widget secret is not configured")

        if not verify_telegram_login(fields, secret):
            raise SignatureInvalidError(f"Rejected widget assertion for id={assertion.id}")

        user = await upsert_user_by_telegram(
            self.db,
            str(assertion.id),
            name=format_display_name(assertion.first_name, assertion.last_name),
            username=assertion.username,
        )
        return await self._finish(user, context)


class BotOtpChannel(VerificationChannel):
    """Code exchanged in a Telegram bot chat."""

    channel = AuthChannel.TELEGRAM_OTP

    def build_bot_link(self, session_token: str) -> str:
        bot_name = self.settings.tg_bot_name
        if not bot_name:
            raise MisconfiguredError("Telegram bot name is not configured")
        return f"https://t.me/{bot_name.removeprefix('@')}?start={session_token}"

    async def begin_verification(
        self, request: BeginRequest, context: RequestContext
    ) -> VerificationStarted:
        if not isinstance(request, BotRequestBody):
            raise InvalidInputError("Bot handshake request expected")
        if not self.settings.tg_bot_name:
            raise MisconfiguredError("Telegram bot name is not configured")

        created = await self.engine.create_bot_session(request.phone)
        if not created.session_token:
            raise ServerError(f"Bot session {created.session_id} has no correlation token")
        return VerificationStarted(
            session_id=created.session_id,
            expires_in=created.expires_in,
            bot_link=self.build_bot_link(created.session_token),
        )

    async def complete_verification(
        self, submission: Submission, context: RequestContext
    ) -> AuthResult:
        if not isinstance(submission, VerifyBody):
            raise InvalidInputError("Code submission expected", code=ErrorCode.INVALID_OTP)

        auth_session = await self.engine.verify(
            submission.otp,
            phone=submission.phone,
            session_id=submission.session_id,
            channel=self.channel,
        )

        tg_user_id = auth_session.tg_user_id
        if tg_user_id:
            return await self._finish_session(
                auth_session,
                context,
                lambda: upsert_user_by_telegram(self.db, tg_user_id, phone=auth_session.phone),
            )
        phone = self._verified_phone(auth_session)
        return await self._finish_session(
            auth_session, context, lambda: upsert_user_by_phone(self.db, phone)
        )


CHANNELS: dict[AuthChannel, type[VerificationChannel]] = {
    AuthChannel.WHATSAPP: CodedMessageChannel,
    AuthChannel.TELEGRAM: WidgetChannel,
    AuthChannel.TELEGRAM_OTP: BotOtpChannel,
}


class ChannelRegistry:
    """Builds channel handlers, honouring the enabled providers."""

    def __init__(
        self,
        db: AsyncSession,
        engine: SessionEngine,
        issuer: CredentialIssuer,
        settings: Settings,
    ) -> None:
        self.db = db
        self.engine = engine
        self.issuer = issuer
        self.settings = settings

    def is_enabled(self, channel: AuthChannel) -> bool:
        return channel.value in self.settings.auth_providers

    def get(self, channel: AuthChannel | str) -> VerificationChannel:
        channel = AuthChannel(channel)
        if not self.is_enabled(channel):
            raise NotFoundError(f"Channel {channel.value} is disabled")
        return CHANNELS[channel](self.db, self.engine, self.issuer, self.settings)
