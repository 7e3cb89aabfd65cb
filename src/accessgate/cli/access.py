"""Entitlement CLI commands."""

import asyncio
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from accessgate.client import AccessClient
from accessgate.config import settings
from accessgate.database import get_session_context
from accessgate.models import GrantSource, User
from accessgate.services.access import ContentClassification, check_access
from accessgate.services.grants import grant_access, list_active_entitlements, revoke_access

console = Console()
app = typer.Typer(help="Grant, revoke and inspect access")


async def _get_user(session, email: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        console.print(f"[red]Error:[/red] User {email} not found")
        raise typer.Exit(1)
    return user


@app.command("grant")
def grant(
    email: str = typer.Argument(..., help="User email"),
    hours: int = typer.Option(24, "--hours", "-h", min=1, help="Grant length in hours"),
):
    """Grant access, replacing any current grant."""

    async def _grant():
        async with get_session_context() as session:
            user = await _get_user(session, email)
            entitlement = await grant_access(
                session,
                user.id,
                timedelta(hours=hours),
                source=GrantSource.ADMIN,
            )
            await session.commit()
            console.print(
                f"[green]Granted access to {email}[/green] until "
                f"{entitlement.expires_at:%Y-%m-%d %H:%M} UTC"
            )

    asyncio.run(_grant())


@app.command("revoke")
def revoke(email: str = typer.Argument(..., help="User email")):
    """Revoke a user's grant immediately."""

    async def _revoke():
        async with get_session_context() as session:
            user = await _get_user(session, email)
            if not await revoke_access(session, user.id):
                console.print(f"[yellow]No grant for {email}[/yellow]")
                return
            await session.commit()
            console.print(f"[green]Revoked access for {email}[/green]")

    asyncio.run(_revoke())


@app.command("status")
def status(
    email: str = typer.Argument(..., help="User email"),
    classification: ContentClassification = typer.Option(
        ContentClassification.PREMIUM, "--classification", "-c"
    ),
):
    """Show the access decision for a user."""

    async def _status():
        async with get_session_context() as session:
            user = await _get_user(session, email)
            decision = await check_access(session, user, classification)

        color = "green" if decision.allowed else "red"
        console.print(f"[{color}]{'Allowed' if decision.allowed else 'Denied'}[/{color}] ({decision.reason.value})")
        if decision.expires_at:
            console.print(
                f"[dim]Expires {decision.expires_at:%Y-%m-%d %H:%M} UTC, "
                f"{decision.remaining_seconds}s left[/dim]"
            )

    asyncio.run(_status())


@app.command("list")
def list_grants():
    """List unexpired grants."""

    async def _list():
        async with get_session_context() as session:
            entitlements = await list_active_entitlements(session)

        table = Table(title="Active grants")
        table.add_column("User", style="cyan")
        table.add_column("Source", style="magenta")
        table.add_column("Granted", style="dim")
        table.add_column("Expires", style="green")
        for e in entitlements:
            table.add_row(
                e.user_id,
                e.source,
                f"{e.granted_at:%Y-%m-%d %H:%M}",
                f"{e.expires_at:%Y-%m-%d %H:%M}",
            )
        console.print(table)

    asyncio.run(_list())


@app.command("wait")
def wait(
    token: str = typer.Option(..., "--token", "-t", envvar="ACCESSGATE_TOKEN", help="Bearer token"),
    url: str = typer.Option(settings.api_url, "--url", help="API base URL"),
    start: bool = typer.Option(False, "--start", help="Start a verification first"),
    max_wait: float = typer.Option(
        settings.access_poll_max_wait_seconds, "--max-wait", help="Seconds to wait"
    ),
):
    """Poll the API until the signed-in user has access."""

    async def _wait():
        async with AccessClient(url, token) as client:
            if start:
                started = await client.start_verification()
                console.print(f"Open this link to verify: [cyan]{started.redirect_url}[/cyan]")

            with console.status("Waiting for access..."):
                result = await client.wait_for_access(max_wait=max_wait)

        if result is None:
            console.print("[red]Timed out waiting for access[/red]")
            raise typer.Exit(1)
        console.print(f"[green]Access granted[/green] ({result.reason})")

    asyncio.run(_wait())
