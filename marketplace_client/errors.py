from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


class MarketplaceError(RuntimeError):
    pass


class PersistenceError(MarketplaceError):
    pass


class NetworkUnreachable(MarketplaceError):
    pass


class BackendUnavailable(MarketplaceError):
    pass


class AuthFailure(MarketplaceError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ValidationError(MarketplaceError):
    def __init__(self, message: str | None = None, detail: str | None = None):
        super().__init__(message or detail or Messages.INVALID_REQUEST)
        self.message = message
        self.detail = detail


class Messages:
    """User-facing strings. Collaborators may swap in translated values."""

    PERMISSION_DENIED = "You do not have permission to perform this action"
    NOT_FOUND = "Resource not found"
    INVALID_REQUEST = "Invalid request"
    LOGIN_REQUIRED = "Please log in to continue"
    SERVER_ERROR = "Server error. Please try again later"
    NETWORK_ERROR = "Network error. Please check your connection"
    GENERIC_ERROR = "An error occurred"

    CONNECTION_ERROR_TITLE = "Connection Error"
    NETWORK_OFFLINE = "No internet connection. Please check your network."
    SERVER_MAINTENANCE = (
        "Currently servers are not reachable or under maintenance. We will be back soon."
    )
    UNKNOWN_ERROR = "An unknown error occurred."
    PERMISSION_DENIED_TITLE = "Permission Denied"

    SAVE_SESSION_FAILED = "Failed to save session"
    LOAD_SESSION_FAILED = "Failed to load session"
    PROFILE_FETCH_FAILED = "Failed to fetch profile"

    BACK = "Back"
    OK = "OK"
    RETRY = "Retry"


@dataclass(frozen=True)
class ErrorDescriptor:
    status: int | None = None
    message: str | None = None
    detail: str | None = None
    error: str | None = None

    @staticmethod
    def from_payload(payload: Mapping[str, Any] | None, status: int | None = None) -> "ErrorDescriptor":
        payload = payload or {}
        return ErrorDescriptor(
            status=status,
            message=_text_or_none(payload.get("message")),
            detail=_text_or_none(payload.get("detail")),
            error=_text_or_none(payload.get("error")),
        )


def describe_api_error(descriptor: ErrorDescriptor) -> str:
    status = descriptor.status
    if status == 403:
        return Messages.PERMISSION_DENIED
    if status == 404:
        return Messages.NOT_FOUND
    if status == 400:
        return descriptor.message or descriptor.detail or Messages.INVALID_REQUEST
    if status == 401:
        return Messages.LOGIN_REQUIRED
    if status == 500:
        return Messages.SERVER_ERROR
    if not status:
        return Messages.NETWORK_ERROR
    return descriptor.message or descriptor.detail or descriptor.error or Messages.GENERIC_ERROR


def describe_missing_capability(capability: str) -> str:
    readable = capability.replace("can_", "", 1).replace("_", " ", 1)
    return f'You need the "{readable}" capability to perform this action.'


def _text_or_none(value: Any) -> str | None:
    # FastAPI validation errors put a list under "detail"
    if value is None or isinstance(value, (list, dict)):
        return None
    text = str(value).strip()
    return text or None
