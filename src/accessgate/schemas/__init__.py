"""Pydantic schemas for API requests/responses."""

from accessgate.schemas.access import (
    AccessModeRequest,
    AccessModeResponse,
    AccessStatusResponse,
    AdminGrantRequest,
    BatchPasswordCreate,
    BatchPasswordUpdate,
    GrantResponse,
    RedeemCodeRequest,
    RedeemPasswordRequest,
    StartVerificationResponse,
)
from accessgate.schemas.common import (
    CamelModel,
    ErrorResponse,
    PaginatedResponse,
    PaginationParams,
)

__all__ = [
    "AccessModeRequest",
    "AccessModeResponse",
    "AccessStatusResponse",
    "AdminGrantRequest",
    "BatchPasswordCreate",
    "BatchPasswordUpdate",
    "CamelModel",
    "ErrorResponse",
    "GrantResponse",
    "PaginatedResponse",
    "PaginationParams",
    "RedeemCodeRequest",
    "RedeemPasswordRequest",
    "StartVerificationResponse",
]
