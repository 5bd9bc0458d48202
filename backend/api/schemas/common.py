"""Common schemas used across the API."""

from pydantic import BaseModel, Field


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    per_page: int = Field(
        default=20, ge=1, le=100, description="Items per page (max 100)"
    )


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


class CountResponse(BaseModel):
    """A single count (unread copies, records updated, ...)."""

    count: int = Field(ge=0)


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(description="Human-readable error message")
    error: str = Field(description="Exception class name (NotFoundError, PreconditionError, ...)")
    request_id: str = Field(description="Request ID from the X-Request-ID header")
