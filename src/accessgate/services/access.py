"""Access decision function.

Read-only and called on every poll, so it does a single indexed lookup and
recomputes validity from ``expires_at`` each time instead of trusting any
cached or swept state.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from accessgate.models import Entitlement, User
from accessgate.services.clock import is_valid, remaining_seconds, utcnow
from accessgate.services.grants import get_active_entitlement


class ContentClassification(str, Enum):
    PREMIUM = "premium"
    BASIC = "basic"


class AccessReason(str, Enum):
    ADMIN = "admin"
    ENTITLEMENT = "entitlement"
    BASIC_CONTENT = "basic_content"
    NEEDS_VERIFICATION = "needs_verification"


@dataclass(frozen=True)
class AccessDecision:
    """Result of an access check.

    ``remaining_seconds`` is None when access is not time-bounded (admins,
    basic content) or when access is denied.
    """

    allowed: bool
    reason: AccessReason
    remaining_seconds: int | None = None
    expires_at: datetime | None = None


def decide(
    *,
    is_admin: bool,
    entitlement: Entitlement | None,
    classification: ContentClassification,
    basic_mode: bool,
    now: datetime,
) -> AccessDecision:
    """Compose the access rules; first match wins."""
    if is_admin:
        return AccessDecision(allowed=True, reason=AccessReason.ADMIN)

    if entitlement is not None and is_valid(now, entitlement.expires_at):
        return AccessDecision(
            allowed=True,
            reason=AccessReason.ENTITLEMENT,
            remaining_seconds=remaining_seconds(now, entitlement.expires_at),
            expires_at=entitlement.expires_at,
        )

    if basic_mode and classification == ContentClassification.BASIC:
        return AccessDecision(allowed=True, reason=AccessReason.BASIC_CONTENT)

    return AccessDecision(allowed=False, reason=AccessReason.NEEDS_VERIFICATION)


async def check_access(
    session: AsyncSession,
    user: User,
    classification: ContentClassification = ContentClassification.PREMIUM,
    *,
    now: datetime | None = None,
) -> AccessDecision:
    """Decide access for a user, loading their entitlement when it matters."""
    now = now or utcnow()
    entitlement = None
    if not user.is_admin:
        entitlement = await get_active_entitlement(session, user.id, now)
    return decide(
        is_admin=user.is_admin,
        entitlement=entitlement,
        classification=classification,
        basic_mode=user.basic_mode,
        now=now,
    )
