"""
Failure Explanation Envelope: Unified Response Classification.

This module defines the response envelope that API endpoints use to
communicate failures to clients. Every user-visible failure is classified
and explained.

INVARIANT: No raw stack trace or driver error reaches the client.

Response types:
- Success: Operation completed successfully
- KnownFailure: System knows why it failed (client-correctable)
- UnknownFailure: Generic server error (logged for investigation)
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    NOT_FOUND = "not_found"
    EMPTY_RESULT = "empty_result"
    FORBIDDEN = "forbidden"

    # Ledger failures
    INSUFFICIENT_FUNDS = "insufficient_funds"
    RATE_LIMITED = "rate_limited"

    # Service failures
    PERSISTENCE_FAILURE = "persistence_failure"

    # Internal errors
    INVARIANT_VIOLATION = "invariant_violation"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")

# Fixed text for every generic server error
UNKNOWN_FAILURE_MESSAGE = "Something went wrong on our side. Please try again later."


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope for failures surfaced by the API.

    Every failure is classified into one of the outcome types,
    ensuring no failure reaches the user unexplained.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        """Create a success response."""
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        Example: insufficient points, empty catalog.
        """
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def unknown_failure(cls) -> "ApiResponse[Any]":
        """
        Create an unknown failure response.

        The message is fixed. Internal details stay in the server log.
        """
        return cls(
            outcome=OutcomeType.UNKNOWN_FAILURE,
            failure=FailureDetail(
                kind=FailureKind.UNKNOWN,
                message=UNKNOWN_FAILURE_MESSAGE,
                suggestion="If this persists, please report the issue.",
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    A status_code of 500 or more is rendered as a generic server error.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        if self.is_server_error:
            return ApiResponse.unknown_failure()
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class UserNotFoundError(KnownError):
    """Raised when an operation names a user that does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="User not found.",
            detail=f"user_id={user_id}",
            status_code=404,
        )


class OwnedItemNotFoundError(KnownError):
    """Raised when an inventory entry does not exist."""

    def __init__(self, owned_id: int):
        self.owned_id = owned_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Owned item not found.",
            detail=f"owned_id={owned_id}",
            status_code=404,
        )


class NotOwnerError(KnownError):
    """Raised when a user acts on an inventory entry owned by someone else."""

    def __init__(self, owned_id: int, user_id: int):
        self.owned_id = owned_id
        self.user_id = user_id
        super().__init__(
            kind=FailureKind.FORBIDDEN,
            message="This item belongs to another user.",
            detail=f"owned_id={owned_id}",
            status_code=403,
        )
