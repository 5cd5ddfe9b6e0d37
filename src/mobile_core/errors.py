"""
Error taxonomy for Mobile Core.

Every failure raised by the core derives from MobileCoreError. Callers are
expected to tell "denied" (a normal return value) apart from "could not
determine" (one of these exceptions).
"""

from __future__ import annotations


class MobileCoreError(Exception):
    """Base class for all Mobile Core errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(MobileCoreError):
    """A requested record does not exist."""


class ConflictError(MobileCoreError):
    """A record with the same identity already exists."""


class VersionConflictError(ConflictError):
    """An update was attempted against a stale resource version."""


class ValidationError(MobileCoreError):
    """A validator rejected the input."""


class TransportError(MobileCoreError):
    """Network, serialization or backend I/O failure."""


class AuthenticationError(MobileCoreError):
    """Credentials were rejected upstream."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnexpectedResponseError(MobileCoreError):
    """The cluster answered with a status code we do not understand."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class PartialFailureError(MobileCoreError):
    """
    A two-step lifecycle operation failed after its first step committed.

    The App record and the API key registry are now out of step. The
    original cause is chained as __cause__. Run a reconcile pass (or retry
    the failed step) to repair the state.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        app_id: str,
        completed_step: str,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.app_id = app_id
        self.completed_step = completed_step


def is_authentication_error(exc: BaseException) -> bool:
    """Check whether exc (or anything in its cause chain) is an AuthenticationError."""
    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, AuthenticationError):
            return True
        current = current.__cause__
    return False
