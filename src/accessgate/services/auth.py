"""Bearer-token verification.

Identity is managed by the host application; this service only needs to turn
a signed JWT into a ``User`` row. ``create_token`` exists for operators and
tests that need to mint a token for a known user.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from accessgate.config import settings
from accessgate.models import User
from accessgate.services.errors import Unauthorized


def create_token(user: User, expires_in: timedelta | None = None) -> str:
    """Create a JWT token for a user."""
    now = datetime.now(UTC)
    expires = now + (expires_in or timedelta(days=settings.jwt_expiration_days))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "is_admin": user.is_admin,
        "exp": expires,
        "iat": now,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise Unauthorized(f"Invalid token: {e}") from e


async def verify_token(session: AsyncSession, token: str) -> User:
    """Verify a JWT token and return the associated user.

    The admin flag is always read from the database, never trusted from the
    token payload, so revoking admin rights takes effect immediately.
    """
    payload = decode_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token: missing user ID")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthorized("User not found")

    return user
