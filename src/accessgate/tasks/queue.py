"""SAQ queue configuration for background tasks."""

from saq import CronJob, Queue

from accessgate.config import settings

# Main task queue
queue = Queue.from_url(settings.redis_url)


def get_queue_settings() -> dict:
    """Get SAQ queue settings for the worker."""
    # Import here to avoid circular imports
    from accessgate.tasks.maintenance import purge_expired_entitlements

    return {
        "queue": queue,
        "functions": [purge_expired_entitlements],
        "cron_jobs": [
            CronJob(purge_expired_entitlements, cron=settings.expiry_sweep_cron),
        ],
        "concurrency": 1,
        "startup": startup,
        "shutdown": shutdown,
    }


async def startup(_ctx: dict) -> None:
    """Called when worker starts."""
    pass


async def shutdown(_ctx: dict) -> None:
    """Called when worker shuts down."""
    from accessgate.database import close_db

    await close_db()
