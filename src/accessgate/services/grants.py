"""Grant issuer: the single mutation path for entitlement rows.

Grants are replaced, never stacked. Replacement is a keyed upsert on
``user_id`` so concurrent readers always see either the old row or the new
one. None of these functions commit; callers own the transaction boundary.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import delete, select

from accessgate.models import Entitlement, GrantSource
from accessgate.models.base import generate_nanoid
from accessgate.services.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    """Outcome of a successful token, code or password redemption."""

    user_id: str
    entitlement: Entitlement
    batch_id: str | None = None


_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession):
    """The bound dialect's INSERT construct, which supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    try:
        return _UPSERT_DIALECTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on {dialect}") from None


async def grant_access(
    session: AsyncSession,
    user_id: str,
    duration: timedelta,
    *,
    source: GrantSource = GrantSource.ADMIN,
    granted_by: str | None = None,
    now: datetime | None = None,
) -> Entitlement:
    """Create or replace the user's entitlement, expiring ``duration`` from now."""
    if duration <= timedelta(0):
        raise ValueError("Grant duration must be positive")

    now = now or utcnow()
    expires_at = now + duration

    insert = dialect_insert(session)
    stmt = insert(Entitlement.__table__).values(  # type: ignore[attr-defined]
        id=generate_nanoid(),
        user_id=user_id,
        granted_at=now,
        expires_at=expires_at,
        source=source.value,
        granted_by=granted_by,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "granted_at": now,
            "expires_at": expires_at,
            "source": source.value,
            "granted_by": granted_by,
            "updated_at": now,
        },
    )
    await session.execute(stmt)

    result = await session.execute(
        select(Entitlement)
        .where(Entitlement.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    entitlement = result.scalar_one()

    logger.info(f"Granted {source.value} access to user {user_id} until {expires_at.isoformat()}")
    return entitlement


async def revoke_access(session: AsyncSession, user_id: str) -> bool:
    """Delete the user's entitlement outright. Returns whether one existed."""
    result = await session.execute(delete(Entitlement).where(Entitlement.user_id == user_id))
    revoked = result.rowcount > 0  # type: ignore[attr-defined]
    if revoked:
        logger.info(f"Revoked access for user {user_id}")
    return revoked


async def get_active_entitlement(
    session: AsyncSession,
    user_id: str,
    now: datetime | None = None,
) -> Entitlement | None:
    """Return the user's entitlement if it has not expired yet."""
    now = now or utcnow()
    stmt = select(Entitlement).where(
        Entitlement.user_id == user_id,
        Entitlement.expires_at > now,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_active_entitlements(
    session: AsyncSession,
    now: datetime | None = None,
) -> list[Entitlement]:
    """All unexpired entitlements, soonest expiry last."""
    now = now or utcnow()
    stmt = (
        select(Entitlement)
        .where(Entitlement.expires_at > now)
        .order_by(Entitlement.expires_at.desc())  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return list(result.scalars())


async def purge_expired_entitlements(
    session: AsyncSession,
    now: datetime | None = None,
    dry_run: bool = False,
) -> int:
    """Delete entitlement rows whose expiry has passed.

    Purely housekeeping: access decisions never depend on this having run.
    """
    now = now or utcnow()
    if dry_run:
        result = await session.execute(select(Entitlement.id).where(Entitlement.expires_at <= now))
        return len(result.all())

    result = await session.execute(delete(Entitlement).where(Entitlement.expires_at <= now))
    return result.rowcount  # type: ignore[attr-defined]
