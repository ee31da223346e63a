"""User resolution and audit records."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from authgate.models import AuditLog, AuthChannel, LoginEvent, User

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    stmt = select(User).where(User.id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_user_by_phone(session: AsyncSession, phone: str) -> User:
    """Find or create the user that owns a WhatsApp phone."""
    stmt = select(User).where(User.wa_phone == phone)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if not user:
        user = User(wa_phone=phone)
        session.add(user)
        logger.info("Created user for verified phone")

    await session.flush()
    return user


def format_display_name(first_name: str | None, last_name: str | None) -> str | None:
    """Join first and last name the way Telegram shows them."""
    if not first_name:
        return None
    return " ".join([first_name, last_name or ""]).strip()


async def upsert_user_by_telegram(
    session: AsyncSession,
    telegram_user_id: str,
    *,
    name: str | None = None,
    username: str | None = None,
    phone: str | None = None,
) -> User:
    """Find or create a user by Telegram id, refreshing profile fields.

    Fields are only overwritten with non-empty values. A phone that already
    belongs to another user is left where it is.
    """
    stmt = select(User).where(User.telegram_user_id == telegram_user_id)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if not user:
        user = User(telegram_user_id=telegram_user_id)
        session.add(user)

    if name:
        user.name = name
    if username:
        user.username = username

    if phone and user.wa_phone != phone:
        owner_stmt = select(User).where(User.wa_phone == phone)
        owner = (await session.execute(owner_stmt)).scalar_one_or_none()
        if owner is None:
            user.wa_phone = phone
        else:
            logger.warning(
                f"Phone already linked to user {owner.id}, not attaching to telegram user {telegram_user_id}"
            )

    await session.flush()
    return user


async def record_login_event(
    session: AsyncSession,
    channel: AuthChannel | str,
    user_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> LoginEvent:
    """Append a login event. Events are never updated."""
    event = LoginEvent(
        user_id=user_id,
        channel=AuthChannel(channel).value,
        ip=ip,
        user_agent=user_agent[:512] if user_agent else None,
    )
    session.add(event)
    await session.flush()
    return event


async def record_audit(
    session: AsyncSession,
    channel: AuthChannel | str,
    event: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Write an audit log row. Failures are logged, never raised."""
    try:
        session.add(AuditLog(channel=AuthChannel(channel).value, event=event, details=details))
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Failed to write audit log {event!r}: {e!r}")
        await session.rollback()
