"""Maintenance background tasks."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from accessgate.database import get_session_context
from accessgate.services.clock import utcnow
from accessgate.services.grants import purge_expired_entitlements as purge_expired

logger = logging.getLogger(__name__)

# Timeout for maintenance tasks (10 minutes)
MAINTENANCE_TIMEOUT_SECONDS = 10 * 60


async def purge_expired_entitlements(
    ctx: dict[str, Any],
    dry_run: bool = False,
) -> dict[str, Any]:
    """Delete entitlement rows whose expiry has passed.

    Housekeeping only: access checks compare against ``expires_at`` on every
    call, so a late or failed sweep never extends anyone's access.

    Args:
        ctx: SAQ context
        dry_run: If True, only report what would be deleted

    Returns:
        Dict with sweep results
    """
    now = utcnow()

    async with get_session_context() as session:
        try:
            count = await purge_expired(session, now=now, dry_run=dry_run)
            if not dry_run:
                await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            error = f"Entitlement sweep failed: {e}"
            logger.exception(error)
            return {"success": False, "error": error}

    logger.info(
        f"Entitlement sweep complete: {count} expired rows "
        f"{'would be ' if dry_run else ''}deleted"
    )
    return {
        "success": True,
        "dry_run": dry_run,
        "cutoff": now.isoformat(),
        "deleted_count": 0 if dry_run else count,
        "expired_count": count,
    }


# Set SAQ job timeout
purge_expired_entitlements.timeout = MAINTENANCE_TIMEOUT_SECONDS  # type: ignore[attr-defined]
