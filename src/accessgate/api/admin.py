"""Admin endpoints: direct grants, batch passwords, verification audit."""

import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from accessgate.api.deps import AdminUser, SessionDep
from accessgate.api.utils import get_user_or_404
from accessgate.models import GrantSource
from accessgate.models.batch_password import BatchAccessPasswordRead
from accessgate.models.entitlement import EntitlementRead
from accessgate.models.verification_token import VerificationTokenRead
from accessgate.schemas import (
    AdminGrantRequest,
    BatchPasswordCreate,
    BatchPasswordUpdate,
    PaginatedResponse,
    PaginationParams,
)
from accessgate.services import batch_passwords
from accessgate.services.grants import grant_access, list_active_entitlements, revoke_access
from accessgate.services.verification import list_tokens

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/grant", response_model=EntitlementRead, status_code=status.HTTP_201_CREATED)
async def admin_grant(
    request: AdminGrantRequest,
    session: SessionDep,
    admin: AdminUser,
):
    """Grant access for ``hours``, replacing whatever the user had."""
    await get_user_or_404(request.user_id, session)
    entitlement = await grant_access(
        session,
        request.user_id,
        timedelta(hours=request.hours),
        source=GrantSource.ADMIN,
        granted_by=admin.id,
    )
    await session.commit()
    logger.info(f"Admin {admin.id} granted {request.hours}h access to {request.user_id}")
    return EntitlementRead.model_validate(entitlement)


@router.delete("/grant/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_revoke(
    user_id: str,
    session: SessionDep,
    admin: AdminUser,
):
    """Revoke a user's grant immediately, regardless of time left."""
    revoked = await revoke_access(session, user_id)
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No grant for this user",
        )
    await session.commit()
    logger.info(f"Admin {admin.id} revoked access for {user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/grants", response_model=list[EntitlementRead])
async def admin_list_grants(session: SessionDep, _admin: AdminUser):
    """List unexpired grants."""
    entitlements = await list_active_entitlements(session)
    return [EntitlementRead.model_validate(e) for e in entitlements]


@router.get("/verifications", response_model=PaginatedResponse[VerificationTokenRead])
async def admin_list_verifications(
    session: SessionDep,
    _admin: AdminUser,
    pagination: Annotated[PaginationParams, Depends()],
    user_id: str | None = None,
):
    """Audit trail of issued verification tokens, newest first."""
    tokens, total = await list_tokens(
        session,
        user_id=user_id,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    return PaginatedResponse[VerificationTokenRead](
        items=[VerificationTokenRead.model_validate(t) for t in tokens],
        total=total,
        offset=pagination.offset,
        limit=pagination.limit,
    )


@router.post(
    "/batch-passwords",
    response_model=BatchAccessPasswordRead,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_batch_password(
    request: BatchPasswordCreate,
    session: SessionDep,
    admin: AdminUser,
):
    """Create a batch access password; one is generated when omitted."""
    try:
        record = await batch_passwords.create_password(
            session,
            request.batch_id,
            password=request.password,
            valid_hours=request.valid_hours,
            max_uses=request.max_uses,
            ttl=timedelta(hours=request.ttl_hours) if request.ttl_hours else None,
            created_by=admin.id,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e
    await session.commit()
    return BatchAccessPasswordRead.model_validate(record)


@router.get("/batch-passwords", response_model=list[BatchAccessPasswordRead])
async def admin_list_batch_passwords(
    session: SessionDep,
    _admin: AdminUser,
    batch_id: str | None = None,
):
    """List batch passwords, optionally for one batch."""
    records = await batch_passwords.list_passwords(session, batch_id)
    return [BatchAccessPasswordRead.model_validate(r) for r in records]


@router.patch("/batch-passwords/{password_id}", response_model=BatchAccessPasswordRead)
async def admin_update_batch_password(
    password_id: str,
    request: BatchPasswordUpdate,
    session: SessionDep,
    _admin: AdminUser,
):
    """Activate or deactivate a batch password."""
    record = await batch_passwords.set_password_active(session, password_id, request.is_active)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Password not found",
        )
    await session.commit()
    return BatchAccessPasswordRead.model_validate(record)


@router.delete("/batch-passwords/{password_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_batch_password(
    password_id: str,
    session: SessionDep,
    _admin: AdminUser,
):
    """Delete a batch password. Existing grants it produced are kept."""
    deleted = await batch_passwords.delete_password(session, password_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Password not found",
        )
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
