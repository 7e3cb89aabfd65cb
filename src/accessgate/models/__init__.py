"""SQLModel database models."""

from accessgate.models.base import BaseModel, TimestampMixin, UTCDateTime
from accessgate.models.batch_password import BatchAccessPassword, Enrollment
from accessgate.models.entitlement import Entitlement, GrantSource
from accessgate.models.user import User
from accessgate.models.verification_token import VerificationStatus, VerificationToken

__all__ = [
    "BaseModel",
    "BatchAccessPassword",
    "Enrollment",
    "Entitlement",
    "GrantSource",
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "VerificationStatus",
    "VerificationToken",
]
