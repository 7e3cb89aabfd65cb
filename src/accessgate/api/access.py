"""Access status, basic-mode preference and password redemption endpoints."""

import logging

from fastapi import APIRouter

from accessgate.api.deps import CurrentUser, PollRateLimit, RedeemRateLimit, SessionDep
from accessgate.schemas import (
    AccessModeRequest,
    AccessModeResponse,
    AccessStatusResponse,
    ErrorResponse,
    GrantResponse,
    RedeemPasswordRequest,
)
from accessgate.services.access import ContentClassification, check_access
from accessgate.services.batch_passwords import redeem_password

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/access-status", response_model=AccessStatusResponse)
async def access_status(
    session: SessionDep,
    user: CurrentUser,
    _rate_limit: PollRateLimit,
    classification: ContentClassification = ContentClassification.PREMIUM,
):
    """
    Decide whether the current user may view content of this classification.

    Polled by clients waiting on an out-of-band verification, so it never writes.
    """
    decision = await check_access(session, user, classification)
    return AccessStatusResponse(
        allowed=decision.allowed,
        remaining_seconds=decision.remaining_seconds,
        reason=decision.reason.value,
        expires_at=decision.expires_at,
    )


@router.put("/access-mode", response_model=AccessModeResponse)
async def set_access_mode(
    request: AccessModeRequest,
    session: SessionDep,
    user: CurrentUser,
):
    """Opt in to (or out of) basic mode, which unlocks basic content only."""
    user.basic_mode = request.basic_mode
    session.add(user)
    await session.commit()
    return AccessModeResponse(basic_mode=user.basic_mode)


@router.post(
    "/redeem-password",
    response_model=GrantResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
)
async def redeem_batch_password(
    request: RedeemPasswordRequest,
    session: SessionDep,
    user: CurrentUser,
    _rate_limit: RedeemRateLimit,
):
    """Redeem a batch access password for a time-limited grant."""
    result = await redeem_password(session, request.password, user.id)
    return GrantResponse(
        granted=True,
        expires_at=result.entitlement.expires_at,
        batch_id=result.batch_id,
    )
