"""Bot conversation driver tests."""

import re

import pytest

from authgate.models import AuthChannel, SessionState
from authgate.services.bot import (
    ASK_PHONE_TEXT,
    BAD_PHONE_TEXT,
    FOREIGN_CONTACT_TEXT,
    PHONE_MISMATCH_TEXT,
    SESSION_NOT_FOUND_TEXT,
    SHARE_CONTACT_MARKUP,
    USAGE_TEXT,
    BotConversationDriver,
    ContactEvent,
    PhoneTextEvent,
    StartEvent,
    UnknownEvent,
    normalize_phone,
    parse_update,
)
from authgate.services.sessions import SessionEngine, SessionStore

CHAT_ID = "777000"
USER_ID = "555111"
PHONE = "+971501234567"


def message(text=None, contact=None, chat_id=CHAT_ID, user_id=USER_ID) -> dict:
    msg: dict = {"message_id": 1, "chat": {"id": int(chat_id)}, "from": {"id": int(user_id), "first_name": "Ada"}}
    if text is not None:
        msg["text"] = text
    if contact is not None:
        msg["contact"] = contact
    return {"update_id": 1, "message": msg}


def extract_code(text: str) -> str:
    match = re.search(r"\b(\d{6})\b", text)
    assert match, text
    return match.group(1)


@pytest.fixture
def driver(engine: SessionEngine, store: SessionStore, transport) -> BotConversationDriver:
    return BotConversationDriver(engine, store, transport)


class TestParseUpdate:
    def test_start(self):
        event = parse_update(message("/start abc123"))
        assert isinstance(event, StartEvent)
        assert event.token == "abc123"
        assert event.chat_id == CHAT_ID
        assert event.user_id == USER_ID
        assert event.first_name == "Ada"

    def test_start_with_bot_suffix(self):
        event = parse_update(message("/start@authgate_bot tok"))
        assert isinstance(event, StartEvent)
        assert event.token == "tok"

    def test_bare_start_is_unknown(self):
        assert isinstance(parse_update(message("/start")), UnknownEvent)

    def test_contact(self):
        event = parse_update(message(contact={"phone_number": "971501234567", "user_id": int(USER_ID)}))
        assert isinstance(event, ContactEvent)
        assert event.phone == PHONE
        assert event.contact_user_id == USER_ID

    def test_phone_text(self):
        event = parse_update(message("+971 50 123-4567"))
        assert isinstance(event, PhoneTextEvent)
        assert event.phone == PHONE

    def test_other_text(self):
        event = parse_update(message("hello"))
        assert isinstance(event, UnknownEvent)
        assert event.text == "hello"

    def test_non_ascii_digits_are_not_a_phone(self):
        event = parse_update(message("+\u0669\u0667\u0661\u0665\u0660\u0661\u0662\u0663\u0664\u0665\u0666\u0667"))
        assert isinstance(event, UnknownEvent)

    def test_edited_message(self):
        update = message("/start tok")
        update["edited_message"] = update.pop("message")
        assert isinstance(parse_update(update), StartEvent)

    def test_non_chat_updates_ignored(self):
        assert parse_update({"update_id": 1, "callback_query": {}}) is None
        assert parse_update({"update_id": 1, "message": {"text": "hi"}}) is None


def test_normalize_phone():
    assert normalize_phone("+971 (50) 123-4567") == PHONE
    assert normalize_phone("971501234567") == PHONE
    assert normalize_phone("\u0669\u0667\u0661") == "+"


class TestConversation:
    async def test_full_handshake(self, driver, engine: SessionEngine, store: SessionStore, transport):
        created = await engine.create_bot_session()

        reply = await driver.handle(parse_update(message(f"/start {created.session_token}")))
        assert reply.text == ASK_PHONE_TEXT
        assert reply.reply_markup == SHARE_CONTACT_MARKUP

        auth_session = await store.get(created.session_id)
        assert auth_session.tg_chat_id == CHAT_ID
        assert auth_session.tg_user_id == USER_ID

        reply = await driver.handle(
            parse_update(message(contact={"phone_number": PHONE, "user_id": int(USER_ID)}))
        )
        assert reply.code_issued
        code = extract_code(transport.last_text)

        auth_session = await store.get(created.session_id)
        assert auth_session.phone == PHONE
        assert auth_session.token_hash

        confirmed = await engine.verify(
            code, session_id=created.session_id, channel=AuthChannel.TELEGRAM_OTP
        )
        assert confirmed.state == SessionState.CONFIRMED

    async def test_start_is_idempotent(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        start = parse_update(message(f"/start {created.session_token}"))

        await driver.handle(start)
        reply = await driver.handle(start)

        assert reply.text == ASK_PHONE_TEXT
        assert (await store.get(created.session_id)).tg_chat_id == CHAT_ID

    async def test_start_unknown_token(self, driver, transport):
        reply = await driver.handle(parse_update(message("/start nope")))
        assert reply.text == SESSION_NOT_FOUND_TEXT
        assert transport.messages[0]["chat_id"] == CHAT_ID

    async def test_start_from_another_chat(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        await driver.handle(parse_update(message(f"/start {created.session_token}")))

        reply = await driver.handle(
            parse_update(message(f"/start {created.session_token}", chat_id="888", user_id="888"))
        )

        assert reply.text == SESSION_NOT_FOUND_TEXT
        assert (await store.get(created.session_id)).tg_chat_id == CHAT_ID

    async def test_start_for_finished_session(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        await store.transition(created.session_id, SessionState.EXPIRED)

        reply = await driver.handle(parse_update(message(f"/start {created.session_token}")))
        assert reply.text == SESSION_NOT_FOUND_TEXT

    async def test_phone_without_bound_session(self, driver, engine: SessionEngine):
        await engine.create_bot_session()
        reply = await driver.handle(parse_update(message(PHONE)))
        assert reply.text == SESSION_NOT_FOUND_TEXT

    async def test_phone_text_issues_code(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        await driver.handle(parse_update(message(f"/start {created.session_token}")))

        reply = await driver.handle(parse_update(message(PHONE)))

        assert reply.code_issued
        assert (await store.get(created.session_id)).phone == PHONE

    async def test_bad_phone_format(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        await driver.handle(parse_update(message(f"/start {created.session_token}")))

        reply = await driver.handle(parse_update(message(contact={"phone_number": "1234567"})))

        assert reply.text == BAD_PHONE_TEXT
        auth_session = await store.get(created.session_id)
        assert auth_session.token_hash is None
        assert auth_session.phone is None

    async def test_foreign_contact_rejected(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session()
        await driver.handle(parse_update(message(f"/start {created.session_token}")))

        reply = await driver.handle(
            parse_update(message(contact={"phone_number": PHONE, "user_id": 999}))
        )

        assert reply.text == FOREIGN_CONTACT_TEXT
        assert (await store.get(created.session_id)).token_hash is None

    async def test_phone_must_match_preset(self, driver, engine: SessionEngine, store: SessionStore):
        created = await engine.create_bot_session("+971500000000")
        await driver.handle(parse_update(message(f"/start {created.session_token}")))

        reply = await driver.handle(parse_update(message(PHONE)))

        assert reply.text == PHONE_MISMATCH_TEXT
        assert (await store.get(created.session_id)).token_hash is None

    async def test_overdue_session(self, driver, engine: SessionEngine, store: SessionStore, clock):
        created = await engine.create_bot_session()
        await driver.handle(parse_update(message(f"/start {created.session_token}")))
        clock.advance(301)

        reply = await driver.handle(parse_update(message(PHONE)))

        assert reply.text == SESSION_NOT_FOUND_TEXT
        assert (await store.get(created.session_id)).state == SessionState.EXPIRED

    async def test_unknown_message(self, driver, transport):
        reply = await driver.handle(parse_update(message("what is this")))
        assert reply.text == USAGE_TEXT
        assert reply.sent is True
