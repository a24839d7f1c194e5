"""
Custom domain exceptions for consistent error handling.

Every error carries a stable machine-readable `code` so client layers can
render localized messages without string matching. These exceptions are
mapped to HTTP responses by the exception handlers in main.py.
"""
from typing import Any

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""

    default_code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict | None = None,
        code: str | None = None,
        headers: dict | None = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.details = details or {}
        self.code = code or self.default_code


class NotFoundError(DomainError):
    """Resource not found (404)."""
    default_code = "NOT_FOUND"

    def __init__(self, resource_type: str, identifier: Any, details: dict | None = None, code: str | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details, code=code)


class ValidationError(DomainError):
    """Validation error (400)."""
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, details: dict | None = None, code: str | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details, code=code)


class PermissionDeniedError(DomainError):
    """Actor lacks rights over this entity instance (403)."""
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Permission denied", details: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details, code=code)


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", details: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details, code=code)


class InvalidStateError(DomainError):
    """Entity exists and actor is authorized, but its state forbids the change (409)."""
    default_code = "INVALID_STATE"

    def __init__(self, message: str, details: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details, code=code)


class InvalidTransitionError(InvalidStateError):
    """
    Requested status change is not an edge of the state machine.

    Carries the offending (from, to) pair in `details` so callers can render
    a precise error.
    """
    default_code = "INVALID_ORDER_TRANSITION"

    def __init__(
        self,
        entity: str,
        current: Any,
        target: Any,
        allowed: list | None = None,
        actor: Any = None,
        code: str | None = None,
    ):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        details = {
            "from": current_value,
            "to": target_value,
            "allowedTransitions": [getattr(a, "value", a) for a in (allowed or [])],
        }
        if actor is not None:
            details["actor"] = getattr(actor, "value", actor)
        super().__init__(
            f"Cannot transition {entity} from {current_value} to {target_value}.",
            details=details,
            code=code,
        )
        self.current = current_value
        self.target = target_value


class ConflictError(DomainError):
    """Uniqueness or one-per-parent invariant violated (409)."""
    default_code = "CONFLICT"

    def __init__(self, message: str, details: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details, code=code)


class PolicyDisabledError(PermissionDeniedError):
    """
    Self-service capability withdrawn by current policy (403).

    Unlike a plain PermissionDeniedError the message tells the caller where
    to go instead (administrator provisioning).
    """
    default_code = "POLICY_DISABLED"

    def __init__(self, message: str, redirect: str = "administrator", details: dict | None = None, code: str | None = None):
        details = {"redirect": redirect, **(details or {})}
        super().__init__(message, details=details, code=code)


class RateLimitError(DomainError):
    """Rate limit exceeded (429)."""
    default_code = "RATE_LIMITED"

    def __init__(self, message: str = "Rate limit exceeded", details: dict | None = None, retry_after: int | None = None):
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        super().__init__(message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, details=details, headers=headers)
