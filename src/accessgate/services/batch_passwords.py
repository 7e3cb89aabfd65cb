"""Batch access password registry.

Passwords are shared secrets handed out per batch, each with a usage cap and
its own expiry. Redeeming one enrolls the user in the batch and grants the
same global entitlement as the verification flow; the grant is not limited
to the password's batch.
"""

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from accessgate.models import BatchAccessPassword, Enrollment, GrantSource
from accessgate.models.base import generate_nanoid
from accessgate.services.clock import is_expired, utcnow
from accessgate.services.errors import Exhausted, Expired, InvalidPassword, StorageFailure
from accessgate.services.grants import RedemptionResult, dialect_insert, grant_access

logger = logging.getLogger(__name__)

# No 0/O or 1/I so passwords survive being read aloud
PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 64


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Random password from the unambiguous alphabet."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


async def create_password(
    session: AsyncSession,
    batch_id: str,
    *,
    password: str | None = None,
    valid_hours: int = 24,
    max_uses: int = 100,
    ttl: timedelta | None = None,
    created_by: str | None = None,
    now: datetime | None = None,
) -> BatchAccessPassword:
    """Create a batch password. Caller commits.

    ``ttl`` is how long the password itself can be redeemed and defaults to
    ``valid_hours``. ``valid_hours`` is the length of each resulting grant.
    """
    if valid_hours < 1:
        raise ValueError("valid_hours must be at least 1")
    if max_uses < 1:
        raise ValueError("max_uses must be at least 1")
    if ttl is None:
        ttl = timedelta(hours=valid_hours)
    if ttl <= timedelta(0):
        raise ValueError("ttl must be positive")

    password = (password or generate_password()).strip()
    if not password or len(password) > MAX_PASSWORD_LENGTH:
        raise ValueError(f"password must be 1-{MAX_PASSWORD_LENGTH} characters")

    now = now or utcnow()
    record = BatchAccessPassword(
        batch_id=batch_id,
        password=password,
        valid_hours=valid_hours,
        max_uses=max_uses,
        current_uses=0,
        is_active=True,
        created_by=created_by,
        created_at=now,
        expires_at=now + ttl,
    )
    session.add(record)
    await session.flush()

    logger.info(f"Created access password {record.id} for batch {batch_id} (max_uses={max_uses})")
    return record


async def list_passwords(
    session: AsyncSession,
    batch_id: str | None = None,
) -> list[BatchAccessPassword]:
    """Passwords newest first, optionally filtered to one batch."""
    stmt = select(BatchAccessPassword)
    if batch_id:
        stmt = stmt.where(BatchAccessPassword.batch_id == batch_id)
    result = await session.execute(
        stmt.order_by(BatchAccessPassword.created_at.desc())  # type: ignore[attr-defined]
    )
    return list(result.scalars())


async def get_password(session: AsyncSession, password_id: str) -> BatchAccessPassword | None:
    return await session.get(BatchAccessPassword, password_id)


async def set_password_active(
    session: AsyncSession,
    password_id: str,
    is_active: bool,
) -> BatchAccessPassword | None:
    record = await get_password(session, password_id)
    if record is None:
        return None
    record.is_active = is_active
    await session.flush()
    return record


async def delete_password(session: AsyncSession, password_id: str) -> bool:
    record = await get_password(session, password_id)
    if record is None:
        return False
    await session.delete(record)
    await session.flush()
    logger.info(f"Deleted access password {password_id}")
    return True


async def _classify_failure(session: AsyncSession, password: str, now: datetime) -> Exception:
    stmt = (
        select(BatchAccessPassword)
        .where(BatchAccessPassword.password == password, BatchAccessPassword.is_active.is_(True))  # type: ignore[attr-defined]
        .order_by(BatchAccessPassword.created_at.desc())  # type: ignore[attr-defined]
        .limit(1)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    record = result.scalar_one_or_none()

    if record is None:
        return InvalidPassword("Invalid access password")
    if is_expired(now, record.expires_at):
        return Expired("Access password expired")
    return Exhausted("Access password has no uses left")


async def _enroll(
    session: AsyncSession, user_id: str, batch_id: str, password_id: str, now: datetime
) -> None:
    insert = dialect_insert(session)
    stmt = (
        insert(Enrollment.__table__)  # type: ignore[attr-defined]
        .values(
            id=generate_nanoid(),
            user_id=user_id,
            batch_id=batch_id,
            enrolled_via_password_id=password_id,
            enrolled_at=now,
        )
        .on_conflict_do_nothing(index_elements=["user_id", "batch_id"])
    )
    await session.execute(stmt)


async def redeem_password(
    session: AsyncSession,
    password: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> RedemptionResult:
    """Spend one use of a batch password and grant access for its ``valid_hours``.

    When several active passwords share the string, the newest one that is
    still within its window and under its cap is spent.

    The cap check and the increment are one guarded UPDATE; when a single
    slot is left, exactly one concurrent caller wins.

    Raises:
        InvalidPassword: no active password matches
        Expired: the password's window has passed
        Exhausted: every use has been spent
        StorageFailure: the store failed; nothing was changed
    """
    password = password.strip()
    if not password or len(password) > MAX_PASSWORD_LENGTH:
        raise InvalidPassword("Invalid access password")

    now = now or utcnow()
    newest_redeemable = (
        select(BatchAccessPassword.id)
        .where(
            BatchAccessPassword.password == password,
            BatchAccessPassword.is_active.is_(True),  # type: ignore[attr-defined]
            BatchAccessPassword.expires_at > now,  # type: ignore[operator]
            BatchAccessPassword.current_uses < BatchAccessPassword.max_uses,  # type: ignore[operator]
        )
        .order_by(BatchAccessPassword.created_at.desc())  # type: ignore[attr-defined]
        .limit(1)
        .scalar_subquery()
    )
    stmt = (
        update(BatchAccessPassword)
        .where(
            BatchAccessPassword.id == newest_redeemable,
            BatchAccessPassword.expires_at > now,  # type: ignore[operator]
            BatchAccessPassword.current_uses < BatchAccessPassword.max_uses,  # type: ignore[operator]
        )
        .values(current_uses=BatchAccessPassword.current_uses + 1)
        .returning(
            BatchAccessPassword.id,
            BatchAccessPassword.batch_id,
            BatchAccessPassword.valid_hours,
        )
        .execution_options(synchronize_session=False)
    )

    try:
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            failure = await _classify_failure(session, password, now)
            await session.rollback()
            raise failure

        password_id, batch_id, valid_hours = row
        await _enroll(session, user_id, batch_id, password_id, now)
        entitlement = await grant_access(
            session,
            user_id,
            timedelta(hours=valid_hours),
            source=GrantSource.PASSWORD,
            now=now,
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Password redemption rolled back: {e!r}")
        raise StorageFailure("Could not record password redemption") from e

    logger.info(f"User {user_id} redeemed access password {password_id} for batch {batch_id}")
    return RedemptionResult(user_id=user_id, entitlement=entitlement, batch_id=batch_id)
