"""Verification-token flow endpoints.

``/start-verification`` is called by the signed-in user. ``/verify-callback``
and ``/verification-code`` are opened by the third-party gateway's redirect,
so they are unauthenticated, treat every parameter as untrusted, and answer
with HTML pages rather than JSON.
"""

import logging
from html import escape

from fastapi import APIRouter, status
from fastapi.responses import HTMLResponse

from accessgate.api.deps import (
    CallbackRateLimit,
    CurrentUser,
    RedeemRateLimit,
    SessionDep,
    StartRateLimit,
)
from accessgate.api.utils import render_page
from accessgate.config import settings
from accessgate.schemas import (
    ErrorResponse,
    GrantResponse,
    RedeemCodeRequest,
    StartVerificationResponse,
)
from accessgate.services.errors import AlreadyUsed, Expired, NotFound, StorageFailure
from accessgate.services.shortener import shorten_url
from accessgate.services.verification import (
    build_destination_url,
    get_pending_code,
    is_well_formed_token,
    issue_token,
    redeem_code,
    redeem_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_PAGES = {
    "missing_token": (
        status.HTTP_400_BAD_REQUEST,
        "The verification link is incomplete. Start a new verification from the app.",
    ),
    "invalid_token": (
        status.HTTP_400_BAD_REQUEST,
        "This verification link is invalid, expired, or was already used. "
        "Start a new verification from the app.",
    ),
    "access_failed": (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "We could not unlock access right now. Please try again.",
    ),
    "server_error": (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Something went wrong. Please try again.",
    ),
}


def verification_error_page(error: str) -> HTMLResponse:
    status_code, message = ERROR_PAGES[error]
    return render_page("Verification failed", message, status_code=status_code, error=error)


@router.post("/start-verification", response_model=StartVerificationResponse)
async def start_verification(
    session: SessionDep,
    user: CurrentUser,
    _rate_limit: StartRateLimit,
):
    """
    Issue a single-use verification token.

    The client opens ``redirectUrl`` in a new tab and then polls
    ``/access-status`` until the external callback has granted access.
    """
    verification = await issue_token(session, user.id)
    await session.commit()

    redirect_url = await shorten_url(build_destination_url(verification.token))

    return StartVerificationResponse(
        token=verification.token,
        redirect_url=redirect_url,
        expires_at=verification.expires_at,
        code_expires_at=(
            verification.code_expires_at if settings.verification_delivery == "code" else None
        ),
    )


@router.get("/verify-callback", response_class=HTMLResponse)
async def verify_callback(
    session: SessionDep,
    _rate_limit: CallbackRateLimit,
    token: str | None = None,
):
    """Redeem a verification token on behalf of the external gateway."""
    if not token:
        logger.warning("Verification callback without token")
        return verification_error_page("missing_token")

    if not is_well_formed_token(token):
        logger.warning("Verification callback with malformed token")
        return verification_error_page("invalid_token")

    try:
        result = await redeem_token(session, token)
    except (NotFound, AlreadyUsed, Expired) as e:
        logger.info(f"Verification callback rejected: {e.code}")
        return verification_error_page("invalid_token")
    except StorageFailure:
        return verification_error_page("access_failed")
    except Exception:
        logger.exception("Verification callback failed")
        return verification_error_page("server_error")

    expires_at = result.entitlement.expires_at
    return render_page(
        "Access unlocked",
        f"Premium access is active until {expires_at:%Y-%m-%d %H:%M} UTC. "
        "You can close this tab and return to the app.",
    )


@router.get("/verification-code", response_class=HTMLResponse)
async def verification_code_page(
    session: SessionDep,
    _rate_limit: CallbackRateLimit,
    token: str | None = None,
):
    """Show the numeric code for a pending token without spending it."""
    if not token:
        return verification_error_page("missing_token")
    if not is_well_formed_token(token):
        return verification_error_page("invalid_token")

    try:
        verification = await get_pending_code(session, token)
    except (NotFound, AlreadyUsed, Expired) as e:
        logger.info(f"Verification code page rejected: {e.code}")
        return verification_error_page("invalid_token")

    code = escape(verification.code or "")
    return render_page(
        "Your verification code",
        "Enter this code in the app to unlock access.",
        extra=f'<p style="font-size: 2.5rem; letter-spacing: 0.3em;"><strong>{code}</strong></p>',
    )


@router.post(
    "/verify-code",
    response_model=GrantResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
)
async def verify_code(
    request: RedeemCodeRequest,
    session: SessionDep,
    user: CurrentUser,
    _rate_limit: RedeemRateLimit,
):
    """Redeem the numeric code shown at the end of the external flow."""
    result = await redeem_code(session, user.id, request.code.strip())
    return GrantResponse(granted=True, expires_at=result.entitlement.expires_at)
