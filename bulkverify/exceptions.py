"""Exception hierarchy for the bulk verification core.

Every failure surfaced by the core is a VerifyError subclass carrying a
``kind`` string. The HTTP layer maps kinds to status codes; nothing here is
fatal to the process.
"""

from typing import Any


class VerifyError(Exception):
    """Base exception for all bulk verification errors."""

    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(VerifyError):
    """Resource missing or soft-deleted."""

    kind = "not_found"


class PermissionDeniedError(VerifyError):
    """Actor is neither the owner nor holds a qualifying grant."""

    kind = "permission_denied"


class InvalidArgumentError(VerifyError):
    """Missing or malformed required field."""

    kind = "invalid_argument"


class ConflictError(VerifyError):
    """Expected state did not match during an atomic transition."""

    kind = "conflict"


class ExternalProviderError(VerifyError):
    """The verification provider call failed or returned an error payload.

    Attributes:
        status_code: HTTP status from the provider, None for transport errors
        payload: Raw provider error body, kept for diagnostics
    """

    kind = "external_provider"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404
