"""FastAPI dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from accessgate.database import get_session
from accessgate.models import User
from accessgate.services.auth import verify_token
from accessgate.services.errors import Unauthorized
from accessgate.services.rate_limit import (
    RateLimitType,
    check_rate_limit,
    rate_limit_headers,
)

logger = logging.getLogger(__name__)

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await verify_token(session, credentials.credentials)
    except Unauthorized as e:
        logger.debug(f"Token verification failed: {e!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_admin_user(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]


class RateLimitDependency:
    """Dependency class for rate limiting endpoints.

    Usage:
        @router.post("/endpoint")
        async def endpoint(
            rate_limit: Annotated[None, Depends(RateLimitDependency(RateLimitType.REDEEM))]
        ):
            ...
    """

    def __init__(self, limit_type: RateLimitType) -> None:
        self.limit_type = limit_type

    async def __call__(self, request: Request) -> None:
        """Check rate limit and raise 429 if exceeded."""
        await self._enforce(request)

    async def _enforce(self, request: Request, user_id: str | None = None) -> None:
        result = await check_rate_limit(request, self.limit_type, user_id)

        if not result.success:
            headers = rate_limit_headers(result)
            retry_after = headers.get("Retry-After", "60")
            logger.warning(f"Rate limit exceeded for {self.limit_type.value} on {request.url.path}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
                headers=headers,
            )


class UserRateLimitDependency(RateLimitDependency):
    """Rate limit keyed by the signed-in user instead of the client IP."""

    async def __call__(self, request: Request, user: CurrentUser) -> None:  # type: ignore[override]
        await self._enforce(request, user.id)


# The callback is reached by unauthenticated redirects; everything else is per user
CallbackRateLimit = Annotated[None, Depends(RateLimitDependency(RateLimitType.CALLBACK))]
StartRateLimit = Annotated[None, Depends(UserRateLimitDependency(RateLimitType.START))]
RedeemRateLimit = Annotated[None, Depends(UserRateLimitDependency(RateLimitType.REDEEM))]
PollRateLimit = Annotated[None, Depends(UserRateLimitDependency(RateLimitType.POLL))]
