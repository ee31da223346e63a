"""User resolution and audit record tests."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError
from sqlmodel import select

from authgate.models import AuditLog, LoginEvent, User
from authgate.services.users import (
    format_display_name,
    record_audit,
    record_login_event,
    upsert_user_by_phone,
    upsert_user_by_telegram,
)


async def test_upsert_by_phone_is_stable(session):
    first = await upsert_user_by_phone(session, "+971500000000")
    await session.commit()
    second = await upsert_user_by_phone(session, "+971500000000")

    assert first.id == second.id
    users = (await session.execute(select(User))).scalars().all()
    assert len(users) == 1


async def test_upsert_by_telegram_refreshes_profile(session):
    user = await upsert_user_by_telegram(session, "42", name="Ada", username="ada")
    await session.commit()

    again = await upsert_user_by_telegram(session, "42", name="Ada L", username=None)

    assert again.id == user.id
    assert again.name == "Ada L"
    # Empty values never overwrite
    assert again.username == "ada"


async def test_upsert_by_telegram_attaches_free_phone(session):
    user = await upsert_user_by_telegram(session, "42", phone="+971501234567")
    assert user.wa_phone == "+971501234567"


async def test_upsert_by_telegram_keeps_owned_phone(session):
    owner = await upsert_user_by_phone(session, "+971501234567")
    await session.commit()

    user = await upsert_user_by_telegram(session, "42", phone="+971501234567")

    assert user.id != owner.id
    assert user.wa_phone is None


def test_format_display_name():
    assert format_display_name("Ada", "Lovelace") == "Ada Lovelace"
    assert format_display_name("Ada", None) == "Ada"
    assert format_display_name(None, "Lovelace") is None


async def test_record_login_event(session, user):
    await record_login_event(session, "tg", user_id=user.id, ip="203.0.113.7", user_agent="x" * 600)
    await session.commit()

    events = (await session.execute(select(LoginEvent))).scalars().all()
    assert len(events) == 1
    assert events[0].channel == "tg"
    assert events[0].ip == "203.0.113.7"
    assert len(events[0].user_agent) == 512


async def test_record_audit(session):
    await record_audit(session, "wa", "send_failed", {"status": 500})

    rows = (await session.execute(select(AuditLog))).scalars().all()
    assert rows[0].event == "send_failed"
    assert rows[0].details == {"status": 500}


async def test_record_audit_failure_is_swallowed(session, caplog):
    with patch.object(session, "commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
        await record_audit(session, "wa", "send_failed")

    assert "Failed to write audit log" in caplog.text
