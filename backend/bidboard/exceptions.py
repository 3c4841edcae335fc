"""
BidBoard Backend - Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for every failure the lifecycle engine knows.
How:   Every class carries a user-safe message plus a context dict. The
       handlers in main.py look each class up in ERROR_STATUS and render
       {error, message, details, request_id} with the mapped status code.
Who:   Raised by the domain functions, repository and services; caught by
       global handlers, or by the notification dispatcher for notifier errors.

Exception Hierarchy:
    BidBoardError (base)
    ├── ValidationError               → 400 Bad Request
    ├── AuthenticationError           → 401 Unauthorized
    ├── ForbiddenError                → 403 Forbidden
    ├── NotFoundError                 → 404 Not Found
    ├── InvalidStateTransitionError   → 409 Conflict (illegal edge)
    ├── ConflictAssignmentError       → 409 Conflict (lost the accept race)
    ├── DuplicateApplicationError     → 409 Conflict
    ├── ProjectNotOpenError           → 409 Conflict
    ├── PersistenceError              → 500 Internal Server Error
    ├── OperationTimeoutError         → 504 Gateway Timeout
    ├── NotifierError                 (never leaves the dispatcher)
    └── CircuitBreakerOpenError       (never leaves the dispatcher)

Recoverable outcomes:
    ConflictAssignmentError and InvalidStateTransitionError are expected
    results of normal operation (a lost race, a stale screen). Callers render
    them as user-facing messages and may retry after re-fetching state.
"""

from typing import Any, Dict, Optional


class BidBoardError(Exception):
    """
    Base exception for all BidBoard application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where handlers allow)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(BidBoardError):
    """
    Raised when input fails a business rule the schema layer cannot express.

    Example: a rejection reason shorter than 10 characters reaching the
    service through a non-HTTP caller.
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


class AuthenticationError(BidBoardError):
    """Raised when the request carries no usable actor identity."""

    def __init__(
        self,
        message: str = "Missing or malformed actor identity headers",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(BidBoardError):
    """Raised when the actor may not read or mutate the target application."""

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(BidBoardError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; the service layer converts that
    None into this exception.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {}, resource=resource)
        if resource_id is None:
            message = f"No such {resource}"
        else:
            message = f"No {resource} with id {resource_id}"
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class InvalidStateTransitionError(BidBoardError):
    """
    Raised when the requested status change is not a legal edge for the
    application's current status and the actor's role.

    Also raised when a guarded write finds the row no longer in the expected
    source status (it changed between load and write).
    """

    def __init__(
        self,
        current: str,
        target: str,
        role: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"Cannot move application from '{current}' to '{target}'"
        if role:
            message += f" as {role}"
        ctx = context or {}
        ctx.update({"current_status": current, "target_status": target})
        if role:
            ctx["actor_role"] = role
        super().__init__(message=message, context=ctx)
        self.current = current
        self.target = target
        self.role = role


class ConflictAssignmentError(BidBoardError):
    """
    Raised when another approve already claimed the project.

    This is the expected outcome of losing a concurrent accept race. Nothing
    was written; the caller should re-fetch the project and its applications.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Another application has already been accepted for this project"
        ctx = context or {}
        if project_id:
            ctx["project_id"] = project_id
        super().__init__(message=message, context=ctx)


class DuplicateApplicationError(BidBoardError):
    """Raised when a professional applies twice to the same project."""

    def __init__(
        self,
        message: str = "You have already applied to this project",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ProjectNotOpenError(BidBoardError):
    """Raised when a project no longer accepts applications."""

    def __init__(
        self,
        message: str = "This project is no longer open for applications",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(BidBoardError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. Details (statement,
    constraint name, original exception type) go to the server log only.
    Never recovered locally: it propagates to the top-level error handler.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class OperationTimeoutError(BidBoardError):
    """Raised when a unit of work exceeds settings.operation_timeout_seconds."""

    def __init__(
        self,
        operation: str = "operation",
        timeout: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The {operation} took too long and was cancelled. No changes were saved."
        ctx = context or {}
        ctx["operation"] = operation
        if timeout is not None:
            ctx["timeout_seconds"] = timeout
        super().__init__(message=message, context=ctx)


class NotifierError(BidBoardError):
    """Raised by a notifier when delivery fails after all retries."""

    def __init__(
        self,
        message: str = "Notification delivery failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(BidBoardError):
    """
    Raised when the notifier circuit breaker is OPEN.

    CLOSED → failures increment counter → threshold reached → OPEN
    OPEN → recovery timeout elapsed → HALF_OPEN (one trial delivery)
    HALF_OPEN → success → CLOSED; failure → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Notification delivery is paused after repeated failures. "
            f"Retrying in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
