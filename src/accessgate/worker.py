"""Background task worker using SAQ."""

import asyncio

from saq import Worker

from accessgate.logging import setup_logging
from accessgate.tasks.queue import get_queue_settings


def main() -> None:
    """Run the SAQ worker, including the expiry sweep cron."""
    setup_logging()
    settings = get_queue_settings()
    worker = Worker(
        queue=settings["queue"],
        functions=settings["functions"],
        concurrency=settings.get("concurrency", 1),
        cron_jobs=settings.get("cron_jobs"),
        startup=settings.get("startup"),
        shutdown=settings.get("shutdown"),
    )
    asyncio.run(worker.start())


if __name__ == "__main__":
    main()
