"""Request and response bodies for the entitlement endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from accessgate.schemas.common import CamelModel


class StartVerificationResponse(CamelModel):
    """Handed to the client to open the external verification flow."""

    token: str
    redirect_url: str
    expires_at: datetime
    code_expires_at: datetime | None = None


class RedeemCodeRequest(CamelModel):
    code: str = Field(min_length=1, max_length=12)


class RedeemPasswordRequest(CamelModel):
    password: str = Field(min_length=1, max_length=64)


class GrantResponse(CamelModel):
    granted: bool
    expires_at: datetime
    batch_id: str | None = None


class AccessStatusResponse(CamelModel):
    allowed: bool
    remaining_seconds: int | None
    reason: str
    expires_at: datetime | None = None


class AccessModeRequest(CamelModel):
    basic_mode: bool


class AccessModeResponse(CamelModel):
    basic_mode: bool


class AdminGrantRequest(BaseModel):
    """Administrative grant; replaces any current grant for the user."""

    user_id: str = Field(min_length=1, max_length=21)
    hours: int = Field(default=24, ge=1, le=24 * 366)


class BatchPasswordCreate(BaseModel):
    batch_id: str = Field(min_length=1, max_length=64)
    password: str | None = Field(default=None, min_length=1, max_length=64)
    valid_hours: int = Field(default=24, ge=1, le=24 * 366)
    max_uses: int = Field(default=100, ge=1)
    ttl_hours: int | None = Field(
        default=None, ge=1, description="How long the password can be redeemed; defaults to valid_hours"
    )


class BatchPasswordUpdate(BaseModel):
    is_active: bool
