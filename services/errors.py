"""Error taxonomy shared by services and mapped to HTTP responses by the app."""
from __future__ import annotations

from typing import Optional


class ServiceError(RuntimeError):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": self.message}


class Unauthorized(ServiceError):
    """No session, or the session no longer maps to a user."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(ServiceError):
    """Authenticated but not allowed; ``reason`` tells the client why."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.reason:
            payload["reason"] = self.reason
        return payload


class NotFound(ServiceError):
    status_code = 404

    def __init__(self, message: str = "Not found", reason: Optional[str] = "not found"):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.reason:
            payload["reason"] = self.reason
        return payload


class Conflict(ServiceError):
    """Unique constraint or lifecycle rule violated."""

    status_code = 409


class ValidationError(ServiceError):
    """Missing or malformed input."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[dict[str, list[str]]] = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class UpstreamError(ServiceError):
    """The SQL gateway failed or could not be reached."""

    status_code = 502
