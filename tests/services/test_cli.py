"""CLI command tests."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from authgate.cli import app
from authgate.models import SessionState, User

runner = CliRunner()


@asynccontextmanager
async def fake_session_context():
    yield MagicMock()


def test_tokens_issue():
    user = User(id="user-1", wa_phone="+971500000000")
    with (
        patch("authgate.cli.tokens.get_session_context", fake_session_context),
        patch("authgate.cli.tokens.get_user", AsyncMock(return_value=user)),
    ):
        result = runner.invoke(app, ["tokens", "issue", "user-1", "--channel", "tg-otp"])

    assert result.exit_code == 0
    assert "Token:" in result.output


def test_tokens_issue_unknown_user():
    with (
        patch("authgate.cli.tokens.get_session_context", fake_session_context),
        patch("authgate.cli.tokens.get_user", AsyncMock(return_value=None)),
    ):
        result = runner.invoke(app, ["tokens", "issue", "nobody"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_sessions_expire_stale():
    with (
        patch("authgate.cli.sessions.get_session_context", fake_session_context),
        patch(
            "authgate.cli.sessions.SessionStore.expire_stale", AsyncMock(return_value=3)
        ) as mock_expire,
    ):
        result = runner.invoke(app, ["sessions", "expire-stale"])

    assert result.exit_code == 0
    assert "Expired 3 session(s)" in result.output
    mock_expire.assert_awaited_once()


def test_sessions_stats():
    with (
        patch("authgate.cli.sessions.get_session_context", fake_session_context),
        patch(
            "authgate.cli.sessions.SessionStore.count_by_state",
            AsyncMock(return_value={SessionState.CONFIRMED.value: 4}),
        ),
    ):
        result = runner.invoke(app, ["sessions", "stats"])

    assert result.exit_code == 0
    assert "confirmed: 4" in result.output
    assert "pending: 0" in result.output


def test_db_migrate_failure():
    with patch("authgate.cli.db.subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=1)
        result = runner.invoke(app, ["db", "migrate"])

    assert result.exit_code == 1
    assert mock_run.call_args[0][0][-2:] == ["upgrade", "head"]
