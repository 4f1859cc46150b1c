"""Error taxonomy shared by the store, the HTTP layer and the sync client."""

from __future__ import annotations

from typing import Any, Optional


class TadpoleError(Exception):
    """Base class for every error raised by tadpole."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TadpoleError):
    """Rejected input: empty title, malformed tag name or color, unknown tag id."""

    status_code = 400


class ConflictError(TadpoleError):
    """A tag with the same (case-insensitive) name already exists."""

    status_code = 409

    def __init__(self, message: str, existing: Optional[Any] = None) -> None:
        super().__init__(message)
        self.existing = existing


class NotFoundError(TadpoleError):
    """Update or delete of an unknown id."""

    status_code = 404


class ConnectivityError(TadpoleError):
    """The store could not be reached (lock timeout, unreadable file, network)."""

    status_code = 503


class SyncStateError(TadpoleError):
    """A client mutation was attempted while the collection is not ready."""

    status_code = 409


class ReorderError(TadpoleError):
    """One or more position updates of a reorder fan-out failed."""

    def __init__(self, message: str, failures: list[BaseException]) -> None:
        super().__init__(message)
        self.failures = failures


STATUS_TO_ERROR: dict[int, type[TadpoleError]] = {
    400: ValidationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    503: ConnectivityError,
}
