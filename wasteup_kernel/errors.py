"""
Error taxonomy for the kernel.

Every lifecycle failure is a synchronous rejection carrying one of these kinds.
None of them are retried by the kernel; retrying is the caller's decision.
"""

from typing import Optional


class PortalError(Exception):
    """Base class for all kernel rejections."""

    status_code = 500
    kind = "portal_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class ValidationError(PortalError):
    """Malformed or missing input."""

    status_code = 400
    kind = "validation_error"


class NotFoundError(PortalError):
    """Unknown record id."""

    status_code = 404
    kind = "not_found"


class InvalidTransitionError(PortalError):
    """Attempted status change is not an edge of the lifecycle graph."""

    status_code = 409
    kind = "invalid_transition"

    def __init__(self, current: str, attempted: str, detail: Optional[str] = None):
        super().__init__(
            detail or f"Cannot move a request from {current} to {attempted}."
        )
        self.current = current
        self.attempted = attempted

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current"] = self.current
        data["attempted"] = self.attempted
        return data


class ForbiddenError(PortalError):
    """The actor's role may not perform this operation."""

    status_code = 403
    kind = "forbidden"


class ConflictError(PortalError):
    """A concurrent write to the same record won the race. Safe to retry."""

    status_code = 409
    kind = "conflict"


class StorageError(PortalError):
    """The record store failed; prior state is left intact."""

    status_code = 503
    kind = "storage_error"
