"""Verification token ledger model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from accessgate.models.base import UTCDateTime, generate_nanoid


class VerificationStatus(str, Enum):
    """Lifecycle status of a verification token."""

    PENDING = "pending"
    VERIFIED = "verified"


class VerificationToken(SQLModel, table=True):
    """Single-use token that starts an external verification flow.

    Rows are never deleted; redeemed tokens stay around for admin audit.
    """

    __tablename__ = "verification_tokens"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True, max_length=21)
    token: str = Field(unique=True, index=True, max_length=255, description="Opaque single-use secret")
    code: str | None = Field(default=None, index=True, max_length=12, description="Human-entered code")
    used: bool = Field(default=False)
    status: str = Field(
        default=VerificationStatus.PENDING.value,
        sa_column=Column(String(20), nullable=False, default="pending"),
    )
    created_at: datetime = Field(sa_type=UTCDateTime)  # type: ignore[call-overload]
    expires_at: datetime = Field(sa_type=UTCDateTime)  # type: ignore[call-overload]
    code_expires_at: datetime | None = Field(default=None, sa_type=UTCDateTime)  # type: ignore[call-overload]
    verified_at: datetime | None = Field(default=None, sa_type=UTCDateTime)  # type: ignore[call-overload]


class VerificationTokenRead(SQLModel):
    """Admin view of a verification token (the secret itself is not exposed)."""

    id: str
    user_id: str
    code: str | None
    used: bool
    status: str
    created_at: datetime
    expires_at: datetime
    code_expires_at: datetime | None
    verified_at: datetime | None
