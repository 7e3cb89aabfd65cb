"""Verification token ledger.

A token is issued when the user starts the ad/shortener flow and is redeemed
by the external callback (or by the user typing the numeric code). Redemption
is a single conditional UPDATE, so the same token can never be spent twice.
Marking the token used and replacing the user's entitlement share one
transaction, committed (or rolled back) here.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta
from secrets import token_hex
from urllib.parse import urlencode

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select

from accessgate.config import settings
from accessgate.models import GrantSource, VerificationStatus, VerificationToken
from accessgate.services.clock import is_expired, utcnow
from accessgate.services.errors import (
    AlreadyUsed,
    EntitlementError,
    Expired,
    NotFound,
    StorageFailure,
)
from accessgate.services.grants import RedemptionResult, grant_access

logger = logging.getLogger(__name__)

# Tokens are 64 hex chars today; accept any URL-safe value up to the column size
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,255}$")
CODE_PATTERN = re.compile(r"^\d{6}$")

CALLBACK_PATH = "/api/verify-callback"
CODE_PAGE_PATH = "/api/verification-code"


def is_well_formed_token(token: str | None) -> bool:
    """Cheap shape check applied to untrusted callback input before any query."""
    return bool(token) and TOKEN_PATTERN.fullmatch(token) is not None  # type: ignore[arg-type]


def generate_code() -> str:
    """Six-digit numeric code, zero padded."""
    return f"{secrets.randbelow(10**6):06d}"


def _api_url(path: str, token: str) -> str:
    return f"{settings.api_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def build_callback_url(token: str) -> str:
    """URL that redeems the token when the external service redirects to it."""
    return _api_url(CALLBACK_PATH, token)


def build_destination_url(token: str) -> str:
    """Where the external flow lands once the user completes it.

    In ``code`` delivery mode the landing page only shows the numeric code,
    which the user then types back into the app.
    """
    if settings.verification_delivery == "code":
        return _api_url(CODE_PAGE_PATH, token)
    return build_callback_url(token)


async def issue_token(
    session: AsyncSession,
    user_id: str,
    *,
    now: datetime | None = None,
    ttl: timedelta | None = None,
    code_ttl: timedelta | None = None,
) -> VerificationToken:
    """Create a pending verification token for a user. Caller commits."""
    now = now or utcnow()
    ttl = ttl or timedelta(minutes=settings.verification_token_ttl_minutes)
    code_ttl = code_ttl or timedelta(minutes=settings.verification_code_ttl_minutes)

    expires_at = now + ttl
    verification = VerificationToken(
        user_id=user_id,
        token=token_hex(32),
        code=generate_code(),
        used=False,
        status=VerificationStatus.PENDING.value,
        created_at=now,
        expires_at=expires_at,
        # The code never outlives the token it belongs to
        code_expires_at=min(now + code_ttl, expires_at),
    )
    session.add(verification)
    await session.flush()

    logger.info(f"Issued verification token {verification.id} for user {user_id}")
    return verification


async def _classify_failure(
    session: AsyncSession,
    condition: ColumnElement[bool],
    now: datetime,
    *,
    use_code_expiry: bool = False,
) -> EntitlementError:
    stmt = (
        select(VerificationToken)
        .where(condition)
        .order_by(VerificationToken.created_at.desc())  # type: ignore[attr-defined]
        .limit(1)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    verification = result.scalar_one_or_none()

    if verification is None:
        return NotFound("Verification token not found")
    if verification.used:
        return AlreadyUsed("Verification token already used")
    expiry = verification.code_expires_at if use_code_expiry else verification.expires_at
    if expiry is None or is_expired(now, expiry):
        return Expired("Verification token expired")
    # The guarded update lost a race we cannot attribute; report it as spent
    return AlreadyUsed("Verification token already used")


async def _consume(
    session: AsyncSession,
    target: ColumnElement[bool],
    expiry_guard: ColumnElement[bool],
    now: datetime,
) -> str | None:
    """Flip one unused, unexpired token to verified. Returns its user id."""
    stmt = (
        update(VerificationToken)
        .where(target, VerificationToken.used.is_(False), expiry_guard)  # type: ignore[attr-defined]
        .values(used=True, status=VerificationStatus.VERIFIED.value, verified_at=now)
        .returning(VerificationToken.user_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _redeem(
    session: AsyncSession,
    target: ColumnElement[bool],
    lookup: ColumnElement[bool],
    *,
    use_code_expiry: bool,
    now: datetime,
    grant_duration: timedelta,
) -> RedemptionResult:
    if use_code_expiry:
        expiry_guard = VerificationToken.code_expires_at > now  # type: ignore[operator]
    else:
        expiry_guard = VerificationToken.expires_at > now  # type: ignore[assignment]

    try:
        user_id = await _consume(session, target, expiry_guard, now)
        if user_id is None:
            failure = await _classify_failure(session, lookup, now, use_code_expiry=use_code_expiry)
            await session.rollback()
            raise failure

        entitlement = await grant_access(
            session,
            user_id,
            grant_duration,
            source=GrantSource.VERIFICATION,
            now=now,
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Verification redemption rolled back: {e!r}")
        raise StorageFailure("Could not record verification") from e

    return RedemptionResult(user_id=user_id, entitlement=entitlement)


async def redeem_token(
    session: AsyncSession,
    token: str,
    *,
    now: datetime | None = None,
    grant_duration: timedelta | None = None,
) -> RedemptionResult:
    """Spend a verification token and grant access to its owner.

    Raises:
        NotFound: no token matches
        AlreadyUsed: the token was redeemed before
        Expired: the token's window has passed
        StorageFailure: the store failed; nothing was changed
    """
    now = now or utcnow()
    grant_duration = grant_duration or timedelta(hours=settings.verification_grant_hours)
    condition = VerificationToken.token == token

    result = await _redeem(
        session,
        condition,  # type: ignore[arg-type]
        condition,  # type: ignore[arg-type]
        use_code_expiry=False,
        now=now,
        grant_duration=grant_duration,
    )
    logger.info(f"Verification token redeemed for user {result.user_id}")
    return result


async def redeem_code(
    session: AsyncSession,
    user_id: str,
    code: str,
    *,
    now: datetime | None = None,
    grant_duration: timedelta | None = None,
) -> RedemptionResult:
    """Spend the numeric code shown at the end of the external flow.

    Only the user's newest token carrying this code is considered.
    """
    if not CODE_PATTERN.fullmatch(code):
        raise NotFound("Verification code not found")

    now = now or utcnow()
    grant_duration = grant_duration or timedelta(hours=settings.verification_grant_hours)
    lookup = (VerificationToken.user_id == user_id) & (VerificationToken.code == code)
    newest = (
        select(VerificationToken.id)
        .where(lookup)
        .order_by(VerificationToken.created_at.desc())  # type: ignore[attr-defined]
        .limit(1)
        .scalar_subquery()
    )

    result = await _redeem(
        session,
        VerificationToken.id == newest,  # type: ignore[arg-type]
        lookup,
        use_code_expiry=True,
        now=now,
        grant_duration=grant_duration,
    )
    logger.info(f"Verification code redeemed for user {user_id}")
    return result


async def get_pending_code(
    session: AsyncSession,
    token: str,
    *,
    now: datetime | None = None,
) -> VerificationToken:
    """Look up a token whose code can still be redeemed, without spending it."""
    now = now or utcnow()
    stmt = select(VerificationToken).where(VerificationToken.token == token)
    verification = (await session.execute(stmt)).scalar_one_or_none()

    if verification is None or verification.code is None:
        raise NotFound("Verification token not found")
    if verification.used:
        raise AlreadyUsed("Verification token already used")
    if verification.code_expires_at is None or is_expired(now, verification.code_expires_at):
        raise Expired("Verification code expired")
    return verification


async def list_tokens(
    session: AsyncSession,
    *,
    user_id: str | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[VerificationToken], int]:
    """Newest-first audit listing of issued tokens, with the total count."""
    stmt = select(VerificationToken)
    count_stmt = select(func.count()).select_from(VerificationToken)
    if user_id:
        stmt = stmt.where(VerificationToken.user_id == user_id)
        count_stmt = count_stmt.where(VerificationToken.user_id == user_id)

    total = (await session.execute(count_stmt)).scalar_one()
    result = await session.execute(
        stmt.order_by(VerificationToken.created_at.desc())  # type: ignore[attr-defined]
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars()), total
