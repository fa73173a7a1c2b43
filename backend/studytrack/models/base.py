"""
Strict Base Models for API Request/Response Validation

Request bodies reject unknown fields so that client/server mismatches fail
fast with a 422 instead of being silently ignored. Response models are more
lenient and can be built straight from ORM rows or domain snapshots.

Usage:
    class SessionCreateRequest(StrictRequest):
        topic_id: int
        planned_duration: int

    class SessionResponse(StrictResponse):
        id: int
        status: SessionStatus

Architecture:
    API Request → StrictRequest (extra="forbid") → Route Handler
    Snapshot / DB row → StrictResponse (extra="ignore") → API Response
"""

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """
    Base model for API request bodies with strict validation.

    Features:
        - extra="forbid": Unknown fields raise 422 Unprocessable Entity
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )


class StrictResponse(BaseModel):
    """
    Base model for API response bodies.

    Features:
        - extra="ignore": Silently ignores extra attributes of the source object
        - from_attributes=True: Allows building from ORM rows and snapshots
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
    )


class PaginatedResponse(StrictResponse):
    """
    Base model for paginated list responses.

    Subclass and add an 'items' field with the appropriate type.
    """

    total: int
    page: int = 1
    page_size: int = 20
    has_more: bool = False


class SuccessResponse(StrictResponse):
    """Simple success response for operations without complex output."""

    success: bool = True
    message: str
