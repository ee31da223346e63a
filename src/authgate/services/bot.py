"""Bot conversation driver for the ``tg-otp`` channel.

The login page creates a pending session and hands the user a deep link
``t.me/<bot>?start=<token>``. The conversation then goes:

1. ``/start <token>`` binds the chat to the session and asks for a phone
2. a shared contact (or a typed phone number) puts a code into the session
3. the bot replies with the code, which the user types on the login page
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from authgate.errors import AuthError, InvalidInputError
from authgate.models import AuthSession
from authgate.services.codes import OTP_TTL_SECONDS
from authgate.services.sessions import SessionEngine, SessionStore, validate_phone
from authgate.services.telegram import BotTransport

logger = logging.getLogger(__name__)

_START_RE = re.compile(r"^/start(?:@\w+)?(?:\s+(\S+))?\s*$")
_PHONE_TEXT_RE = re.compile(r"\+?[0-9][0-9 \-()]{6,20}", re.ASCII)

SESSION_NOT_FOUND_TEXT = (
    "Login session not found or expired. Go back to the login page and start again."
)
ASK_PHONE_TEXT = "Share your phone number to receive a login code."
BAD_PHONE_TEXT = "Send the phone number in international format, for example +971501234567."
PHONE_MISMATCH_TEXT = "This phone number does not match the one entered on the login page."
FOREIGN_CONTACT_TEXT = "Please share your own contact using the button below."
USAGE_TEXT = "Open this bot from the login page to sign in, then share your phone number."
CODE_TEXT = "Your login code: {code}\nIt expires in {minutes} minutes."

SHARE_CONTACT_MARKUP: dict[str, Any] = {
    "keyboard": [[{"text": "Share phone number", "request_contact": True}]],
    "resize_keyboard": True,
    "one_time_keyboard": True,
}
REMOVE_KEYBOARD_MARKUP: dict[str, Any] = {"remove_keyboard": True}


@dataclass
class BotEvent:
    chat_id: str
    user_id: str | None = None


@dataclass
class StartEvent(BotEvent):
    """``/start <token>`` handshake from a deep link."""

    token: str = ""
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None


@dataclass
class ContactEvent(BotEvent):
    """A contact shared through the ``request_contact`` keyboard."""

    phone: str = ""
    contact_user_id: str | None = None


@dataclass
class PhoneTextEvent(BotEvent):
    """Free text that looks like a phone number."""

    phone: str = ""


@dataclass
class UnknownEvent(BotEvent):
    """Anything else sent to the bot."""

    text: str | None = None


@dataclass
class BotReply:
    """What the driver answered with."""

    chat_id: str
    text: str
    reply_markup: dict[str, Any] | None = None
    sent: bool = False
    code_issued: bool = field(default=False, repr=False)


def normalize_phone(raw: str) -> str:
    """Strip formatting and make sure the number carries a leading ``+``."""
    digits = re.sub(r"[^0-9]", "", raw)
    return f"+{digits}"


def parse_update(update: dict[str, Any]) -> BotEvent | None:
    """Turn a Telegram ``Update`` into a driver event.

    Returns None for updates that do not come from a chat (inline queries,
    channel posts without a chat, etc).
    """
    message = update.get("message") or update.get("edited_message")
    if not isinstance(message, dict):
        return None

    chat = message.get("chat") or {}
    if chat.get("id") is None:
        return None
    chat_id = str(chat["id"])

    sender = message.get("from") or {}
    user_id = str(sender["id"]) if sender.get("id") is not None else None

    contact = message.get("contact")
    if isinstance(contact, dict) and contact.get("phone_number"):
        contact_user_id = contact.get("user_id")
        return ContactEvent(
            chat_id=chat_id,
            user_id=user_id,
            phone=normalize_phone(str(contact["phone_number"])),
            contact_user_id=str(contact_user_id) if contact_user_id is not None else None,
        )

    text = message.get("text")
    if isinstance(text, str):
        text = text.strip()
        start = _START_RE.match(text)
        if start and start.group(1):
            return StartEvent(
                chat_id=chat_id,
                user_id=user_id,
                token=start.group(1),
                first_name=sender.get("first_name"),
                last_name=sender.get("last_name"),
                username=sender.get("username"),
            )
        if _PHONE_TEXT_RE.fullmatch(text):
            return PhoneTextEvent(chat_id=chat_id, user_id=user_id, phone=normalize_phone(text))

    return UnknownEvent(chat_id=chat_id, user_id=user_id, text=text if isinstance(text, str) else None)


class BotConversationDriver:
    """Correlates bot chat events with pending ``tg-otp`` sessions."""

    def __init__(self, engine: SessionEngine, store: SessionStore, transport: BotTransport) -> None:
        self.engine = engine
        self.store = store
        self.transport = transport

    async def _reply(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
        code_issued: bool = False,
    ) -> BotReply:
        sent = await self.transport.notify(chat_id, text, reply_markup)
        if not sent:
            logger.warning(f"Bot reply to chat {chat_id} was not delivered")
        return BotReply(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            sent=sent,
            code_issued=code_issued,
        )

    async def handle(self, event: BotEvent) -> BotReply:
        if isinstance(event, StartEvent):
            return await self.handle_start(event)
        if isinstance(event, ContactEvent | PhoneTextEvent):
            return await self.handle_phone(event)
        return await self._reply(event.chat_id, USAGE_TEXT)

    async def handle_start(self, event: StartEvent) -> BotReply:
        """Bind this chat to the session named by the deep-link token."""
        auth_session = await self.store.find_pending_by_token(event.token)
        if auth_session is None:
            return await self._reply(event.chat_id, SESSION_NOT_FOUND_TEXT)

        if auth_session.tg_chat_id is None:
            attached = await self.store.update_pending(
                auth_session.id,
                tg_chat_id=event.chat_id,
                tg_user_id=event.user_id,
            )
            if not attached:
                return await self._reply(event.chat_id, SESSION_NOT_FOUND_TEXT)
            logger.info(f"Attached chat to bot session {auth_session.id}")
        elif auth_session.tg_chat_id != event.chat_id:
            # Token already claimed by a different chat
            logger.warning(f"Bot session {auth_session.id} is bound to another chat")
            return await self._reply(event.chat_id, SESSION_NOT_FOUND_TEXT)

        return await self._reply(event.chat_id, ASK_PHONE_TEXT, SHARE_CONTACT_MARKUP)

    async def handle_phone(self, event: ContactEvent | PhoneTextEvent) -> BotReply:
        """Issue a code into the chat's pending session."""
        auth_session = await self.store.find_pending_by_chat(event.chat_id)
        if auth_session is None:
            return await self._reply(event.chat_id, SESSION_NOT_FOUND_TEXT)

        if isinstance(event, ContactEvent) and not self._is_own_contact(event, auth_session):
            return await self._reply(event.chat_id, FOREIGN_CONTACT_TEXT, SHARE_CONTACT_MARKUP)

        try:
            phone = validate_phone(event.phone)
        except InvalidInputError:
            return await self._reply(event.chat_id, BAD_PHONE_TEXT)

        if auth_session.phone and auth_session.phone != phone:
            return await self._reply(event.chat_id, PHONE_MISMATCH_TEXT)

        try:
            code = await self.engine.issue_code(auth_session, phone)
        except AuthError as e:
            logger.info(f"Could not issue code into bot session {auth_session.id}: {e.code.value}")
            return await self._reply(event.chat_id, SESSION_NOT_FOUND_TEXT)

        text = CODE_TEXT.format(code=code, minutes=OTP_TTL_SECONDS // 60)
        return await self._reply(event.chat_id, text, REMOVE_KEYBOARD_MARKUP, code_issued=True)

    @staticmethod
    def _is_own_contact(event: ContactEvent, auth_session: AuthSession) -> bool:
        owner = event.contact_user_id
        if owner is None:
            return True
        return owner in {event.user_id, auth_session.tg_user_id}
