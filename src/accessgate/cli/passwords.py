"""Batch access password CLI commands."""

import asyncio
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table

from accessgate.database import get_session_context
from accessgate.services import batch_passwords
from accessgate.services.clock import is_expired, utcnow

console = Console()
app = typer.Typer(help="Batch access password commands")


@app.command("create")
def create(
    batch_id: str = typer.Argument(..., help="Batch the password belongs to"),
    password: str | None = typer.Option(None, "--password", "-p", help="Password (generated if omitted)"),
    valid_hours: int = typer.Option(24, "--valid-hours", help="Length of each resulting grant"),
    max_uses: int = typer.Option(100, "--max-uses", help="Redemption cap"),
    ttl_hours: int | None = typer.Option(
        None, "--ttl-hours", help="How long the password can be redeemed (defaults to --valid-hours)"
    ),
):
    """Create a batch access password."""

    async def _create():
        async with get_session_context() as session:
            try:
                record = await batch_passwords.create_password(
                    session,
                    batch_id,
                    password=password,
                    valid_hours=valid_hours,
                    max_uses=max_uses,
                    ttl=timedelta(hours=ttl_hours) if ttl_hours is not None else None,
                )
            except ValueError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1) from e
            await session.commit()

        console.print(f"[green]Created password[/green] [bold]{record.password}[/bold] for batch {batch_id}")
        console.print(f"[dim]id={record.id} max_uses={max_uses} expires {record.expires_at:%Y-%m-%d %H:%M} UTC[/dim]")

    asyncio.run(_create())


@app.command("list")
def list_passwords(
    batch_id: str | None = typer.Option(None, "--batch", "-b", help="Filter by batch"),
):
    """List batch access passwords."""

    async def _list():
        async with get_session_context() as session:
            records = await batch_passwords.list_passwords(session, batch_id)

        now = utcnow()
        table = Table(title="Batch passwords")
        table.add_column("ID", style="cyan")
        table.add_column("Batch")
        table.add_column("Password", style="bold")
        table.add_column("Uses", justify="right")
        table.add_column("Status")
        table.add_column("Expires", style="dim")

        for r in records:
            if not r.is_active:
                state = "[dim]inactive[/dim]"
            elif is_expired(now, r.expires_at):
                state = "[red]expired[/red]"
            elif r.current_uses >= r.max_uses:
                state = "[yellow]exhausted[/yellow]"
            else:
                state = "[green]active[/green]"
            table.add_row(
                r.id,
                r.batch_id,
                r.password,
                f"{r.current_uses}/{r.max_uses}",
                state,
                f"{r.expires_at:%Y-%m-%d %H:%M}",
            )
        console.print(table)

    asyncio.run(_list())


@app.command("deactivate")
def deactivate(password_id: str = typer.Argument(..., help="Password ID")):
    """Stop a password from being redeemed. Existing grants are kept."""

    async def _deactivate():
        async with get_session_context() as session:
            record = await batch_passwords.set_password_active(session, password_id, False)
            if record is None:
                console.print(f"[red]Error:[/red] Password {password_id} not found")
                raise typer.Exit(1)
            await session.commit()
        console.print(f"[green]Deactivated password {password_id}[/green]")

    asyncio.run(_deactivate())


@app.command("delete")
def delete(
    password_id: str = typer.Argument(..., help="Password ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Delete a password."""
    if not force and not typer.confirm(f"Delete password {password_id}?"):
        raise typer.Exit(0)

    async def _delete():
        async with get_session_context() as session:
            if not await batch_passwords.delete_password(session, password_id):
                console.print(f"[red]Error:[/red] Password {password_id} not found")
                raise typer.Exit(1)
            await session.commit()
        console.print(f"[green]Deleted password {password_id}[/green]")

    asyncio.run(_delete())
