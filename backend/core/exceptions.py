"""Custom exceptions for the approval flow engine."""


class FlowEngineError(Exception):
    """Base exception for the approval flow engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(FlowEngineError):
    """Unknown definition, instance, task or identity."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class AuthorizationError(FlowEngineError):
    """Actor is not the task's assignee or not the instance's initiator."""

    def __init__(self, message: str = "Not allowed"):
        """Initialize AuthorizationError with 403 status code."""
        super().__init__(message, 403)


class PreconditionError(FlowEngineError):
    """Task or instance is no longer in the expected status.

    Raised when a concurrent actor got there first; callers treat it as a
    benign race, not a bug.
    """

    def __init__(self, message: str = "Precondition failed"):
        """Initialize PreconditionError with 409 status code."""
        super().__init__(message, 409)


class ValidationError(FlowEngineError):
    """Malformed graph or invalid input."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)
