"""Authentication endpoints.

Sign-in lives in the host application; tokens it issues are accepted here.
"""

from fastapi import APIRouter

from accessgate.api.deps import CurrentUser
from accessgate.models.user import UserRead

router = APIRouter()


@router.get("/me", response_model=UserRead)
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return UserRead.model_validate(user)
