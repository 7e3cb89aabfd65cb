"""Batch access password and enrollment models."""

from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from accessgate.models.base import UTCDateTime, generate_nanoid


class BatchAccessPassword(SQLModel, table=True):
    """Shared, multi-use password scoped to one content batch."""

    __tablename__ = "batch_access_passwords"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    batch_id: str = Field(index=True, max_length=64)
    password: str = Field(index=True, max_length=64)
    valid_hours: int = Field(default=24, description="Grant duration once redeemed")
    max_uses: int = Field(default=100)
    current_uses: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_by: str | None = Field(default=None, max_length=21)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=UTCDateTime,  # type: ignore[call-overload]
    )
    expires_at: datetime = Field(
        sa_type=UTCDateTime,  # type: ignore[call-overload]
        description="Window during which the password itself can be redeemed",
    )


class BatchAccessPasswordRead(SQLModel):
    """Schema for reading a batch password."""

    id: str
    batch_id: str
    password: str
    valid_hours: int
    max_uses: int
    current_uses: int
    is_active: bool
    created_at: datetime
    expires_at: datetime


class Enrollment(SQLModel, table=True):
    """Records that a user joined a batch via a password."""

    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "batch_id", name="enrollments_user_batch_key"),)

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True, max_length=21)
    batch_id: str = Field(index=True, max_length=64)
    enrolled_via_password_id: str | None = Field(
        default=None,
        foreign_key="batch_access_passwords.id",
        ondelete="SET NULL",
        max_length=21,
    )
    enrolled_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=UTCDateTime,  # type: ignore[call-overload]
    )
