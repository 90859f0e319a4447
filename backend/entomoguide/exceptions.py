"""
EntomoGuide Backend: Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for every failure a request can hit.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) translate them
       into structured JSON responses with the right HTTP status code.
Who:   Raised by services and the auth gate; caught by global handlers.

Exception Hierarchy:
    EntomoGuideError (base)
    ├── ValidationError                  → 400 Bad Request
    ├── AuthenticationError              → 401 Unauthorized
    │   ├── InvalidTokenError
    │   └── InvalidCredentialsError
    ├── AuthorizationError               → 403 Forbidden
    │   └── RegistrationPendingError
    ├── NotFoundError                    → 404 Not Found
    │   └── AccountNotFoundError
    ├── ConflictError                    → 409 Conflict
    │   └── DuplicateEmailError
    ├── InvariantViolationError          → 400 Bad Request
    │   └── AttachmentLimitExceededError
    ├── DependencyFailureError           → 500 Internal Server Error
    │   ├── FileStorageError
    │   │   └── StorageWriteError
    │   ├── PersistenceError
    │   └── NotificationDeliveryError    → 502 Bad Gateway
    └── RateLimitExceededError           → 429 Too Many Requests

Every failure is scoped to a single request; none of these is fatal to the
process.
"""

from typing import Any, Dict, Optional


class EntomoGuideError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned for validation and invariant errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(EntomoGuideError):
    """
    Raised when client input fails validation (missing fields, bad file type,
    empty update payload, unknown update field).
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


# ── Authentication / Authorization ────────────────────────────────────────


class AuthenticationError(EntomoGuideError):
    """The caller could not be identified (no token, bad token, bad login)."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidTokenError(AuthenticationError):
    """Bearer token failed signature or expiry verification."""

    def __init__(self, message: str = "Invalid or expired token", context=None):
        super().__init__(message=message, context=context)


class InvalidCredentialsError(AuthenticationError):
    """
    Login failed. The same message is used for unknown accounts and wrong
    passwords so the response never reveals which e-mails are registered.
    """

    def __init__(self, message: str = "Invalid e-mail or password", context=None):
        super().__init__(message=message, context=context)


class AuthorizationError(EntomoGuideError):
    """The caller is identified but not allowed to perform the operation."""

    def __init__(
        self,
        message: str = "Access denied",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RegistrationPendingError(AuthorizationError):
    """Correct credentials, but an administrator has not approved the account yet."""

    def __init__(
        self,
        message: str = "Your registration is pending administrator approval.",
        context=None,
    ):
        super().__init__(message=message, context=context)


# ── Resource state ────────────────────────────────────────────────────────


class NotFoundError(EntomoGuideError):
    """Raised when a requested resource does not exist."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: Any = None, context=None):
        super().__init__(resource="account", resource_id=account_id, context=context)


class ConflictError(EntomoGuideError):
    """A unique key already exists."""

    def __init__(
        self,
        message: str = "The resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DuplicateEmailError(ConflictError):
    def __init__(self, email: Optional[str] = None, context=None):
        super().__init__(
            message="This e-mail (or login) is already registered.",
            context=context,
        )
        self.email = email


class InvariantViolationError(EntomoGuideError):
    """A domain rule would be broken by the requested write."""


class AttachmentLimitExceededError(InvariantViolationError):
    """The insect already holds the maximum number of images."""

    def __init__(self, insect_id: Any, limit: int, context=None):
        ctx = context or {}
        ctx.update({"insect_id": insect_id, "limit": limit})
        super().__init__(
            message=f"Limit of {limit} images per insect already reached.",
            context=ctx,
        )
        self.insect_id = insect_id
        self.limit = limit


# ── Dependencies (storage, database, mail) ────────────────────────────────


class DependencyFailureError(EntomoGuideError):
    """A collaborator (disk, database, mail server) failed."""


class FileStorageError(DependencyFailureError):
    """
    Raised when file system operations fail (disk full, permission denied,
    I/O error). Details are logged; the client gets a generic message.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageWriteError(FileStorageError):
    def __init__(
        self,
        message: str = "Failed to save the uploaded image. Please try again.",
        context=None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(DependencyFailureError):
    """
    Raised when a database write or read fails unexpectedly. The message
    returned to the client is always generic.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotificationDeliveryError(DependencyFailureError):
    """
    Raised by the approval route when the account transition succeeded but
    the confirmation e-mail could not be delivered (partial success).
    """

    def __init__(
        self,
        message: str = "Operation completed, but the notification e-mail could not be sent.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(EntomoGuideError):
    """Client exceeded the per-IP limit on authentication endpoints."""

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(
            message=f"Too many attempts. Please wait {retry_after} seconds before trying again.",
            context=ctx,
        )
        self.retry_after = retry_after
