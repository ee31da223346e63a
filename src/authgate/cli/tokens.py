"""Access token commands."""

import asyncio

import typer
from rich.console import Console

from authgate.config import get_settings
from authgate.database import get_session_context
from authgate.models import AuthChannel
from authgate.services.tokens import CredentialIssuer
from authgate.services.users import get_user

console = Console()
app = typer.Typer(help="Access token commands")


@app.command("issue")
def issue_token(
    user_id: str = typer.Argument(..., help="User ID"),
    channel: AuthChannel = typer.Option(AuthChannel.WHATSAPP, "--channel", "-c", help="Channel claim"),
):
    """Issue an access token for an existing user."""

    async def _issue():
        async with get_session_context() as session:
            user = await get_user(session, user_id)
            if not user:
                console.print(f"[red]Error:[/red] User {user_id} not found")
                raise typer.Exit(1)

        issued = CredentialIssuer(get_settings()).issue(user_id, channel)
        console.print(f"[green]Token:[/green] {issued.token}")
        console.print(f"[dim]Expires in: {issued.expires_in}s[/dim]")

    asyncio.run(_issue())
