"""
StudyCare Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions, each bound to an HTTP status and a
       machine-readable error code.
Why:   Services raise typed errors; one handler in main.py turns any of them
       into the standard response envelope.
How:   Each class carries `status_code` and `code` as class attributes plus a
       human-readable message and an optional context dict (logged, never
       returned to the client).

Exception Hierarchy:
    StudyCareError (base)                  → 500
    ├── ValidationError                    → 400 Bad Request
    ├── ConflictError                      → 400 Bad Request (duplicate link/membership)
    ├── AuthenticationError                → 401 Unauthorized
    ├── AuthorizationError                 → 403 Forbidden
    ├── NotFoundError                      → 404 Not Found
    ├── RateLimitExceededError             → 429 Too Many Requests
    ├── CircuitBreakerOpenError            → 503 Service Unavailable
    └── UpstreamServiceError               → 500 Internal Server Error
        ├── DatabaseError
        ├── LLMServiceError
        ├── StorageError
        └── AuthProviderError

Envelope produced by the handler:
    {"success": false, "error": {"message": "...", "code": "not_found"}}
"""

from typing import Any, Dict, Optional


class StudyCareError(Exception):
    """
    Base exception for all StudyCare application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StudyCareError):
    """
    Raised when client input fails validation.

    When:    Missing required fields, unsupported upload type, file too large,
             resolved account has the wrong role.
    HTTP:    400 Bad Request
    """

    status_code = 400
    code = "validation_error"

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


class ConflictError(StudyCareError):
    """
    Raised when a create would duplicate an existing relationship.

    When:    Linking an already-linked child, joining a pod or class twice,
             re-sending a pending invitation.
    HTTP:    400 Bad Request (clients treat duplicates as bad input)
    """

    status_code = 400
    code = "conflict"


class AuthenticationError(StudyCareError):
    """Missing, malformed, invalid or expired credentials (401)."""

    status_code = 401
    code = "authentication_error"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(StudyCareError):
    """
    The caller is authenticated but may not perform this action.

    When:    Role gate rejects the caller, caregiver asks about an unlinked
             child, non-member posts to a pod.
    HTTP:    403 Forbidden
    """

    status_code = 403
    code = "authorization_error"

    def __init__(
        self,
        message: str = "Insufficient permissions",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(StudyCareError):
    """
    Raised when a requested resource does not exist (or is not visible to
    the caller).

    Accepts either a full message or a resource name:
        NotFoundError("Note not found")
        NotFoundError(resource="Pod", resource_id=str(pod_id))
    """

    status_code = 404
    code = "not_found"

    def __init__(
        self,
        message: Optional[str] = None,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(StudyCareError):
    """
    Raised when a client exceeds a rate limit policy.

    HTTP:    429 Too Many Requests, with a Retry-After header.
    """

    status_code = 429
    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                f"Too many requests. Please wait {retry_after} seconds before retrying."
            )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(StudyCareError):
    """
    Raised when an AI provider's circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery period)
        → After the recovery period → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    status_code = 503
    code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


# ══════════════════════════════════════════════════════════════════════════
# Upstream dependency failures (500)
# ══════════════════════════════════════════════════════════════════════════

class UpstreamServiceError(StudyCareError):
    """
    A collaborator (database, AI provider, object storage, auth provider)
    failed. The message is safe for clients; the cause goes in `context`.
    """

    status_code = 500
    code = "upstream_error"


class DatabaseError(UpstreamServiceError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        Detailed error info (SQL, constraint names) is logged server-side
        only and never placed in `message`.
    """

    code = "database_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(UpstreamServiceError):
    """
    Raised when an AI call fails after all retries, or its output cannot
    be interpreted.
    """

    code = "ai_service_error"

    def __init__(
        self,
        message: str = "AI service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class StorageError(UpstreamServiceError):
    """Object storage upload, URL lookup or delete failed."""

    code = "storage_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthProviderError(UpstreamServiceError):
    """The authentication provider could not complete an admin/sign-up call."""

    code = "auth_provider_error"

    def __init__(
        self,
        message: str = "Authentication service error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
