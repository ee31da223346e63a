"""Auth session inspection commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from authgate.database import get_session_context
from authgate.models import SessionState, as_utc, utcnow
from authgate.services.sessions import SessionStore

console = Console()
app = typer.Typer(help="Auth session commands")


@app.command("list")
def list_sessions(
    state: SessionState | None = typer.Option(None, "--state", "-s", help="Filter by state"),
    limit: int = typer.Option(50, "--limit", "-l", help="Number of sessions to show"),
):
    """List recent auth sessions.

    Pending sessions past their expiry are shown as overdue: state is only
    updated when a session is next read.
    """

    async def _list():
        async with get_session_context() as session:
            sessions = await SessionStore(session).list_sessions(state=state, limit=limit)
            now = utcnow()

            table = Table(title="Auth sessions")
            table.add_column("ID", style="cyan")
            table.add_column("Channel")
            table.add_column("Phone", style="green")
            table.add_column("State")
            table.add_column("Attempts", justify="right")
            table.add_column("Created", style="dim")

            for auth_session in sessions:
                state_str = auth_session.state
                if auth_session.is_pending and as_utc(auth_session.expires_at) < now:
                    state_str = "[yellow]pending (overdue)[/yellow]"
                table.add_row(
                    auth_session.id,
                    auth_session.channel,
                    auth_session.phone or "-",
                    state_str,
                    str(auth_session.attempts),
                    auth_session.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                )

            console.print(table)

    asyncio.run(_list())


@app.command("expire-stale")
def expire_stale():
    """Mark every overdue pending session as expired."""

    async def _expire():
        async with get_session_context() as session:
            count = await SessionStore(session).expire_stale(utcnow())
            console.print(f"[green]Expired {count} session(s)[/green]")

    asyncio.run(_expire())


@app.command("stats")
def stats():
    """Count sessions by state."""

    async def _stats():
        async with get_session_context() as session:
            counts = await SessionStore(session).count_by_state()
            for state in SessionState:
                console.print(f"{state.value:>10}: {counts.get(state.value, 0)}")

    asyncio.run(_stats())
