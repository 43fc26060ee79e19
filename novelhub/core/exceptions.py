"""
Domain exceptions. Routes map them to HTTP statuses in novelhub.main.

Denied *reads* are not exceptions: they are AccessDecision(granted=False).
"""
from typing import Any


class NovelhubError(Exception):
    """Base error; detail holds structured fields for logging and API responses."""

    status_code = 400

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFoundError(NovelhubError):
    """Chapter / module / novel / user is missing."""

    status_code = 404


class InvalidStateError(NovelhubError):
    """Mode or balance change violates content-mode rules."""

    status_code = 400


class PermissionDeniedError(NovelhubError):
    """Staff mutation attempted by a user who does not manage the novel."""

    status_code = 403


class InsufficientBalanceError(NovelhubError):
    status_code = 400


class RentalConflictError(NovelhubError):
    """User already holds a valid rental, or the spend action was already processed."""

    status_code = 409


class TransientStoreConflictError(NovelhubError):
    """Retry budget for a write conflict exhausted. Nothing was committed."""

    status_code = 503
