"""User management CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from authgate.database import get_session_context
from authgate.models import LoginEvent, User

console = Console()
app = typer.Typer(help="User management commands")


@app.command("list")
def list_users(
    limit: int = typer.Option(50, "--limit", "-l", help="Number of users to show"),
):
    """List users, newest first."""

    async def _list():
        async with get_session_context() as session:
            stmt = select(User).order_by(User.created_at.desc()).limit(limit)  # type: ignore[attr-defined]
            result = await session.execute(stmt)
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Phone", style="green")
            table.add_column("Telegram", style="magenta")
            table.add_column("Name")
            table.add_column("Created", style="dim")

            for user in users:
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(
                    user.id,
                    user.wa_phone or "-",
                    user.telegram_user_id or "-",
                    user.name or "-",
                    created,
                )

            console.print(table)

    asyncio.run(_list())


@app.command("events")
def list_events(
    user_id: str = typer.Argument(..., help="User ID"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of events to show"),
):
    """Show a user's login history."""

    async def _events():
        async with get_session_context() as session:
            user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
            if not user:
                console.print(f"[red]Error:[/red] User {user_id} not found")
                raise typer.Exit(1)

            stmt = (
                select(LoginEvent)
                .where(LoginEvent.user_id == user_id)
                .order_by(LoginEvent.created_at.desc())  # type: ignore[attr-defined]
                .limit(limit)
            )
            events = (await session.execute(stmt)).scalars().all()

            table = Table(title=f"Logins for {user_id}")
            table.add_column("When", style="dim")
            table.add_column("Channel", style="cyan")
            table.add_column("IP")
            table.add_column("User agent", overflow="fold")

            for event in events:
                table.add_row(
                    event.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                    event.channel,
                    event.ip or "-",
                    event.user_agent or "-",
                )

            console.print(table)

    asyncio.run(_events())
