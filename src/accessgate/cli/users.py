"""User management CLI commands."""

import asyncio
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from accessgate.database import get_session_context
from accessgate.models import User
from accessgate.services.auth import create_token

console = Console()
app = typer.Typer(help="User management commands")


async def _get_user_by_email(session, email: str) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        console.print(f"[red]Error:[/red] User {email} not found")
        raise typer.Exit(1)
    return user


@app.command("list")
def list_users():
    """List all users."""

    async def _list():
        async with get_session_context() as session:
            result = await session.execute(select(User).order_by(User.email))
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Admin", style="magenta")
            table.add_column("Basic mode")

            for user in users:
                admin_str = "[green]Yes[/green]" if user.is_admin else "No"
                basic_str = "Yes" if user.basic_mode else "No"
                table.add_row(user.id, user.email, admin_str, basic_str)

            console.print(table)

    asyncio.run(_list())


@app.command("create")
def create_user(
    email: str = typer.Argument(..., help="User email"),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name"),
    admin: bool = typer.Option(False, "--admin", help="Make user an admin"),
):
    """Create a new user."""

    async def _create():
        async with get_session_context() as session:
            result = await session.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none():
                console.print(f"[red]Error:[/red] User {email} already exists")
                raise typer.Exit(1)

            user = User(email=email, name=name, is_admin=admin)
            session.add(user)
            await session.commit()
            console.print(f"[green]Created user:[/green] {email} {user.id} (admin={admin})")

    asyncio.run(_create())


@app.command("grant-admin")
def grant_admin(email: str = typer.Argument(..., help="User email")):
    """Grant admin privileges to a user. Admins bypass every access check."""

    async def _grant():
        async with get_session_context() as session:
            user = await _get_user_by_email(session, email)
            if user.is_admin:
                console.print(f"[yellow]Warning:[/yellow] User {email} is already an admin")
                return

            user.is_admin = True
            await session.commit()
            console.print(f"[green]Granted admin to:[/green] {email}")

    asyncio.run(_grant())


@app.command("token")
def token(
    email: str = typer.Argument(..., help="User email"),
    days: int = typer.Option(1, "--days", "-d", help="Token lifetime in days"),
):
    """Mint a bearer token for a user, for scripting against the API."""

    async def _token():
        async with get_session_context() as session:
            user = await _get_user_by_email(session, email)
        typer.echo(create_token(user, expires_in=timedelta(days=days)))

    asyncio.run(_token())
