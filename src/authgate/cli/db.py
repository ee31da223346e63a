"""Database migration commands (wrapping alembic)."""

import subprocess
import sys

import typer
from rich.console import Console

console = Console()
app = typer.Typer(help="Database migration commands")


def _alembic(*args: str) -> bool:
    """Run an alembic subcommand in this interpreter. Returns True on success."""
    result = subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        check=False, capture_output=False,
    )
    return result.returncode == 0


def _run_or_exit(args: list[str], done: str, failed: str) -> None:
    if _alembic(*args):
        console.print(f"[green]{done}[/green]")
    else:
        console.print(f"[red]{failed}[/red]")
        raise typer.Exit(1)


@app.command("migrate")
def migrate(
    revision: str = typer.Argument("head", help="Target revision (default: head)"),
):
    """Upgrade the schema to ``revision``."""
    console.print(f"[dim]Upgrading schema to {revision}...[/dim]")
    _run_or_exit(["upgrade", revision], "Schema up to date", "Upgrade failed")


@app.command("rollback")
def rollback(
    revision: str = typer.Argument("-1", help="Target revision (default: one step back)"),
):
    """Downgrade the schema to ``revision``."""
    console.print(f"[dim]Downgrading schema to {revision}...[/dim]")
    _run_or_exit(["downgrade", revision], "Downgrade complete", "Downgrade failed")


@app.command("current")
def current():
    """Show the revision the database is at."""
    _alembic("current")


@app.command("history")
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of revisions to show"),
):
    """Show recent migrations."""
    _alembic("history", f"-r-{limit}:")


@app.command("reset")
def reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Drop every table and migrate from scratch.

    Deletes all users, sessions and audit records.
    """
    if not force:
        console.print("[bold red]WARNING:[/bold red] users, sessions and audit logs will be deleted")
        if not typer.confirm("Continue?"):
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    _run_or_exit(["downgrade", "base"], "Tables dropped", "Could not drop tables")
    _run_or_exit(["upgrade", "head"], "Database reset complete", "Upgrade failed")
