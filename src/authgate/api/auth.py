"""Authentication endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Response

from authgate.api.deps import ChannelsDep, ContextDep, CurrentUser, EngineDep, IssuerDep
from authgate.errors import ServerError
from authgate.models import AuthChannel, UserRead
from authgate.schemas.auth import (
    BotRequestBody,
    BotRequestedResponse,
    CodeRequestedResponse,
    ErrorResponse,
    RequestCodeBody,
    StatusResponse,
    TokenResponse,
    VerifyBody,
)
from authgate.services.channels import AuthResult

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    }
)


def _token_response(result: AuthResult, response: Response, issuer: IssuerDep) -> TokenResponse:
    issuer.set_auth_cookie(response, result.token)
    return TokenResponse(
        token=result.token,
        expires_in=result.expires_in,
        user=UserRead.model_validate(result.user, from_attributes=True),
    )


@router.post("/request", response_model=CodeRequestedResponse, name="request_code")
async def request_code(
    body: RequestCodeBody,
    channels: ChannelsDep,
    context: ContextDep,
):
    """
    Send a one-time code to a phone over WhatsApp.
    """
    started = await channels.get(AuthChannel.WHATSAPP).begin_verification(body, context)
    return CodeRequestedResponse(session_id=started.session_id, expires_in=started.expires_in)


@router.get("/status", response_model=StatusResponse, name="session_status")
async def session_status(session_id: str, engine: EngineDep):
    """
    Report a session's state. Overdue pending sessions are expired on read.
    """
    status = await engine.status(session_id)
    return StatusResponse(state=status.state, channel=status.channel, phone=status.phone)


@router.post("/tg-login", response_model=TokenResponse, name="telegram_login")
async def telegram_login(
    payload: Annotated[dict[str, Any], Body()],
    response: Response,
    channels: ChannelsDep,
    context: ContextDep,
    issuer: IssuerDep,
):
    """
    Exchange a Telegram Login Widget assertion for an access token.
    """
    result = await channels.get(AuthChannel.TELEGRAM).complete_verification(payload, context)
    return _token_response(result, response, issuer)


@router.post("/tg-request", response_model=BotRequestedResponse, name="request_bot_handshake")
async def request_bot_handshake(
    channels: ChannelsDep,
    context: ContextDep,
    body: Annotated[BotRequestBody | None, Body()] = None,
):
    """
    Start a bot verification and return the deep link to open the bot.
    """
    started = await channels.get(AuthChannel.TELEGRAM_OTP).begin_verification(
        body or BotRequestBody(), context
    )
    if not started.bot_link:
        raise ServerError(f"Bot session {started.session_id} started without a link")
    return BotRequestedResponse(
        session_id=started.session_id,
        bot_link=started.bot_link,
        expires_in=started.expires_in,
    )


@router.post("/verify", response_model=TokenResponse, name="verify_code")
async def verify_code(
    body: VerifyBody,
    response: Response,
    channels: ChannelsDep,
    context: ContextDep,
    issuer: IssuerDep,
):
    """
    Submit a code for a WhatsApp or bot session and receive an access token.
    """
    result = await channels.get(body.channel).complete_verification(body, context)
    return _token_response(result, response, issuer)


@router.get("/me", response_model=UserRead)
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return UserRead.model_validate(user, from_attributes=True)


@router.post("/logout")
async def logout(response: Response, issuer: IssuerDep):
    """
    Logout endpoint.

    Tokens are stateless; this only clears the auth cookie.
    """
    issuer.clear_auth_cookie(response)
    return {"message": "Logged out successfully"}
