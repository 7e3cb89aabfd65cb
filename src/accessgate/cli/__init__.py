"""CLI commands using Typer."""

import typer

from accessgate.cli.access import app as access_app
from accessgate.cli.db import app as db_app
from accessgate.cli.maintenance import app as maintenance_app
from accessgate.cli.passwords import app as passwords_app
from accessgate.cli.users import app as users_app

app = typer.Typer(name="accessgate", help="Access entitlement CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(access_app, name="access")
app.add_typer(passwords_app, name="passwords")
app.add_typer(maintenance_app, name="maintenance")


@app.command()
def version():
    """Show version information."""
    from accessgate import __version__

    typer.echo(f"accessgate v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the API server."""
    import uvicorn

    from accessgate.logging import get_uvicorn_log_config

    uvicorn.run(
        "accessgate.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


@app.command()
def worker(
    concurrency: int = typer.Option(1, help="Number of concurrent tasks"),
):
    """Run the background worker, including the hourly expiry sweep."""
    import asyncio

    from saq import Worker

    from accessgate.logging import setup_logging
    from accessgate.tasks import get_queue_settings

    setup_logging()
    settings = get_queue_settings()

    typer.echo(f"Starting worker with concurrency={concurrency}")

    async def run_worker():
        w = Worker(
            queue=settings["queue"],
            functions=settings["functions"],
            cron_jobs=settings["cron_jobs"],
            concurrency=concurrency,
            startup=settings.get("startup"),
            shutdown=settings.get("shutdown"),
        )
        await w.start()

    asyncio.run(run_worker())


if __name__ == "__main__":
    app()
