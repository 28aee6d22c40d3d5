"""Error taxonomy shared by the service layer and the HTTP layer."""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """
    Base error carrying a machine-readable code, a human message,
    an HTTP status code and optional details.
    """

    kind: str = "internal"
    default_status_code: int = 500

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.details: dict[str, Any] = details if details is not None else {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a response body."""
        return {
            "error": self.error,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """Malformed input, raised before any store access."""

    kind = "validation"
    default_status_code = 400


class UnauthorizedError(ServiceError):
    """No principal could be resolved for the request."""

    kind = "unauthorized"
    default_status_code = 401


class ForbiddenError(ServiceError):
    """Role, ownership or approval check failed."""

    kind = "forbidden"
    default_status_code = 403


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""

    kind = "not_found"
    default_status_code = 404


class ConflictError(ServiceError):
    """State-machine or uniqueness violation."""

    kind = "conflict"
    default_status_code = 409


class UpstreamError(ServiceError):
    """A collaborator service could not be reached."""

    kind = "upstream"
    default_status_code = 502
