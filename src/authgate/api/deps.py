"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import Settings
from authgate.database import get_session
from authgate.errors import TokenInvalidError
from authgate.models import User
from authgate.services.bot import BotConversationDriver
from authgate.services.channels import ChannelRegistry, RequestContext
from authgate.services.delivery import DeliveryBackend
from authgate.services.rate_limit import RateLimiter, get_client_ip
from authgate.services.sessions import SessionEngine, SessionStore
from authgate.services.telegram import BotTransport
from authgate.services.tokens import AUTH_COOKIE_NAME, CredentialIssuer
from authgate.services.users import get_user

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    """Process-wide rate limiter."""
    return request.app.state.rate_limiter


def get_delivery(request: Request) -> DeliveryBackend:
    return request.app.state.delivery


def get_bot_transport(request: Request) -> BotTransport:
    return request.app.state.bot_transport


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_issuer(settings: SettingsDep) -> CredentialIssuer:
    return CredentialIssuer(settings)


IssuerDep = Annotated[CredentialIssuer, Depends(get_issuer)]


def get_session_store(session: SessionDep) -> SessionStore:
    return SessionStore(session)


StoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_session_engine(
    store: StoreDep,
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    delivery: Annotated[DeliveryBackend, Depends(get_delivery)],
) -> SessionEngine:
    return SessionEngine(store, rate_limiter, delivery)


EngineDep = Annotated[SessionEngine, Depends(get_session_engine)]


def get_channels(
    session: SessionDep,
    engine: EngineDep,
    issuer: IssuerDep,
    settings: SettingsDep,
) -> ChannelRegistry:
    return ChannelRegistry(session, engine, issuer, settings)


def get_bot_driver(
    engine: EngineDep,
    store: StoreDep,
    transport: Annotated[BotTransport, Depends(get_bot_transport)],
) -> BotConversationDriver:
    return BotConversationDriver(engine, store, transport)


def get_request_context(request: Request) -> RequestContext:
    """Caller address, user agent and origin for audit records."""
    return RequestContext(
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        origin=request.headers.get("origin"),
    )


ChannelsDep = Annotated[ChannelRegistry, Depends(get_channels)]
BotDriverDep = Annotated[BotConversationDriver, Depends(get_bot_driver)]
ContextDep = Annotated[RequestContext, Depends(get_request_context)]


async def get_current_user(
    request: Request,
    session: SessionDep,
    issuer: IssuerDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Resolve the user from a bearer token or the auth cookie, or raise 401."""
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise TokenInvalidError("Not authenticated")

    payload = issuer.decode(token)
    user_id = payload.get("sub")
    if not user_id:
        raise TokenInvalidError("Invalid token: missing user ID")

    user = await get_user(session, user_id)
    if not user:
        logger.debug(f"Token subject {user_id} no longer exists")
        raise TokenInvalidError("User not found")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
