"""CLI commands using Typer."""

import typer

from authgate.cli.db import app as db_app
from authgate.cli.sessions import app as sessions_app
from authgate.cli.tokens import app as tokens_app
from authgate.cli.users import app as users_app

app = typer.Typer(name="authgate", help="authgate CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(sessions_app, name="sessions")
app.add_typer(tokens_app, name="tokens")
