"""Telegram webhook endpoint tests."""

from unittest.mock import AsyncMock, patch

from httpx import AsyncClient

from authgate.services.bot import SESSION_NOT_FOUND_TEXT, USAGE_TEXT

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def update(text: str) -> dict:
    return {"update_id": 9, "message": {"chat": {"id": 1}, "from": {"id": 2}, "text": text}}


async def test_unknown_message_gets_usage(client: AsyncClient, transport):
    response = await client.post("/api/tg/webhook", json=update("hi"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert transport.last_text == USAGE_TEXT


async def test_unknown_token(client: AsyncClient, transport):
    await client.post("/api/tg/webhook", json=update("/start missing"))
    assert transport.last_text == SESSION_NOT_FOUND_TEXT


async def test_secret_token_enforced(app, client: AsyncClient, transport):
    app.state.settings = app.state.settings.model_copy(update={"tg_webhook_secret": "s3cret"})

    response = await client.post("/api/tg/webhook", json=update("hi"))
    assert response.status_code == 403
    assert transport.messages == []

    response = await client.post(
        "/api/tg/webhook", json=update("hi"), headers={SECRET_HEADER: "s3cret"}
    )
    assert response.status_code == 200


async def test_invalid_json(client: AsyncClient):
    response = await client.post(
        "/api/tg/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


async def test_non_chat_update_ignored(client: AsyncClient, transport):
    response = await client.post("/api/tg/webhook", json={"update_id": 3, "poll": {}})
    assert response.json() == {"ok": True}
    assert transport.messages == []


async def test_disabled_bot_channel(app, client: AsyncClient, transport):
    app.state.settings = app.state.settings.model_copy(update={"auth_providers": ["wa"]})

    response = await client.post("/api/tg/webhook", json=update("hi"))

    assert response.json() == {"ok": True}
    assert transport.messages == []


async def test_handler_failure_still_acknowledged(client: AsyncClient):
    with patch(
        "authgate.services.bot.BotConversationDriver.handle",
        new_callable=AsyncMock,
        side_effect=RuntimeError("boom"),
    ):
        response = await client.post("/api/tg/webhook", json=update("hi"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
