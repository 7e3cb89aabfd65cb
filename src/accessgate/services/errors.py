"""Entitlement error taxonomy.

Every redemption failure is recoverable: the user stays ungated and can start
a new flow. ``code`` is the stable identifier sent to clients.
"""

from fastapi import status


class EntitlementError(Exception):
    """Base class for entitlement failures."""

    code: str = "error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class NotFound(EntitlementError):
    """No token or code matches."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyUsed(EntitlementError):
    """The token was already redeemed."""

    code = "already_used"
    status_code = status.HTTP_409_CONFLICT


class Expired(EntitlementError):
    """The token or password is past its expiry."""

    code = "expired"
    status_code = status.HTTP_410_GONE


class Exhausted(EntitlementError):
    """The password has no redemptions left."""

    code = "exhausted"
    status_code = status.HTTP_409_CONFLICT


class InvalidPassword(EntitlementError):
    """No active password matches."""

    code = "invalid"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(EntitlementError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class StorageFailure(EntitlementError):
    """The store failed mid-redemption; the transaction was rolled back."""

    code = "storage_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
