"""Maintenance CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from accessgate.tasks import queue
from accessgate.tasks.maintenance import MAINTENANCE_TIMEOUT_SECONDS

console = Console()
app = typer.Typer(help="Maintenance and cleanup commands")


@app.command("purge-expired")
def purge_expired(
    dry_run: bool = typer.Option(True, "--dry-run/--execute", help="Only report, don't delete"),
    background: bool = typer.Option(False, "--background", "-b", help="Run in background worker"),
):
    """Delete expired entitlement rows.

    Runs hourly in the worker as well. Expired rows never grant access, so
    this only keeps the table small.
    """

    async def _purge():
        if background:
            job = await queue.enqueue(
                "purge_expired_entitlements",
                dry_run=dry_run,
                timeout=MAINTENANCE_TIMEOUT_SECONDS,
            )
            console.print(f"[green]Queued entitlement sweep:[/green] {job.id if job else 'unknown'}")
            return

        from accessgate.tasks.maintenance import purge_expired_entitlements

        result = await purge_expired_entitlements(ctx={}, dry_run=dry_run)
        if not result.get("success"):
            console.print(f"[red]Error:[/red] {result.get('error')}")
            raise typer.Exit(1)

        table = Table(title="Entitlement Sweep")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Cutoff", result["cutoff"])
        table.add_row("Expired Rows", str(result["expired_count"]))
        table.add_row("Deleted", str(result["deleted_count"]))
        console.print(table)

        if dry_run and result["expired_count"] > 0:
            console.print("\n[yellow]Dry run mode - nothing was deleted.[/yellow]")
            console.print("Run with --execute to delete expired rows.")

    asyncio.run(_purge())
