"""Entitlement model: the user's current time-boxed premium grant."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from accessgate.models.base import BaseModel, UTCDateTime


class GrantSource(str, Enum):
    """Issuance path that produced a grant."""

    VERIFICATION = "verification"
    PASSWORD = "password"
    ADMIN = "admin"


class Entitlement(BaseModel, table=True):
    """At most one row per user; a new grant overwrites the old one."""

    __tablename__ = "entitlements"

    user_id: str = Field(
        foreign_key="users.id", ondelete="CASCADE", unique=True, index=True, max_length=21
    )
    granted_at: datetime = Field(sa_type=UTCDateTime)  # type: ignore[call-overload]
    expires_at: datetime = Field(sa_type=UTCDateTime, index=True)  # type: ignore[call-overload]
    source: str = Field(
        default=GrantSource.ADMIN.value,
        sa_column=Column(String(20), nullable=False, default="admin"),
    )
    granted_by: str | None = Field(default=None, max_length=21)


class EntitlementRead(SQLModel):
    """Schema for reading an entitlement."""

    id: str
    user_id: str
    granted_at: datetime
    expires_at: datetime
    source: str
    granted_by: str | None
