"""Health and readiness checks.

Access decisions need only the database. Redis carries the hourly expiry
sweep, which is an optimisation, and the shortener has a direct-URL
fallback, so neither of those makes the service unready on its own.
"""

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from accessgate.api.deps import SessionDep
from accessgate.config import settings
from accessgate.models import Entitlement
from accessgate.services.clock import utcnow
from accessgate.services.resilience import CircuitState, shortener_circuit
from accessgate.tasks.queue import queue

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_database(session: AsyncSession) -> dict[str, Any]:
    """Count live grants; fails if the entitlement schema is missing."""
    stmt = (
        select(func.count())
        .select_from(Entitlement)
        .where(Entitlement.expires_at > utcnow())  # type: ignore[operator]
    )
    active = (await session.execute(stmt)).scalar_one()
    return {"database": "connected", "active_grants": active}


async def _check_sweep_queue() -> dict[str, Any]:
    redis = queue.redis  # type: ignore[attr-defined]
    if redis is None:
        raise ConnectionError("Redis client not initialized")
    await redis.ping()
    return {"redis": "connected", "expiry_sweep_cron": settings.expiry_sweep_cron}


def _shortener_status() -> dict[str, Any]:
    return {
        "configured": bool(settings.shortener_api_url),
        "circuit": shortener_circuit.state.value,
        "failures": shortener_circuit.failure_count,
    }


@router.get("")
async def health_check():
    """Liveness: the process is serving requests."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    try:
        return {"status": "ok", **await _check_database(session)}
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )


@router.get("/redis")
async def health_check_redis():
    """Redis backs the expiry sweep queue."""
    try:
        return {"status": "ok", **await _check_sweep_queue()}
    except Exception as e:
        logger.error(f"Redis health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "redis": "disconnected"},
        )


@router.get("/shortener")
async def health_check_shortener():
    """Shortener configuration and circuit state. Always 200."""
    return {"status": "ok", "shortener": _shortener_status()}


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Readiness: 503 only when the database is unreachable.

    A down sweep queue or an open shortener circuit reports ``degraded``.
    """
    response: dict[str, Any] = {"status": "ok"}

    try:
        response.update(await _check_database(session))
    except Exception as e:
        logger.error(f"Database readiness check failed: {e!r}")
        response["database"] = "disconnected"
        response["status"] = "error"

    try:
        response.update(await _check_sweep_queue())
    except Exception as e:
        logger.warning(f"Expiry sweep queue unavailable: {e!r}")
        response["redis"] = "disconnected"
        if response["status"] == "ok":
            response["status"] = "degraded"

    shortener = _shortener_status()
    response["shortener"] = shortener
    if shortener["configured"] and shortener["circuit"] == CircuitState.OPEN.value:
        if response["status"] == "ok":
            response["status"] = "degraded"

    if response["status"] == "error":
        return JSONResponse(status_code=503, content=response)
    return response
