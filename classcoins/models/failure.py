"""
Failure Explanation Envelope — Unified Response Classification.

This module defines the response envelope that ALL API error responses use
to communicate outcomes to the client, plus the economy exceptions that map
onto it. Every user-visible failure must be classified and explained.

INVARIANT: No raw storage or driver error may reach the client.

Response types:
- Success: Operation completed successfully
- KnownFailure: System knows why it failed (insufficient funds, empty pool...)
- UnknownFailure: System does not know why it failed

AUTHORITY BOUNDARY:
All error responses MUST pass through `finalize_response()`.
This is the single exit point that guarantees failure classification.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, PrivateAttr


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    STUDENT_NOT_FOUND = "student_not_found"
    INVALID_COLLECTIBLE = "invalid_collectible"
    EMPTY_POOL = "empty_pool"
    CATALOG_CONFLICT = "catalog_conflict"

    # Economy constraints
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GATE_ALREADY_CONSUMED = "gate_already_consumed"
    CONCURRENT_MODIFICATION = "concurrent_modification"

    # Service failures
    STORAGE_UNAVAILABLE = "storage_unavailable"

    # Request lifecycle
    ABORTED = "aborted"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


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
    Universal response envelope.

    Every response is classified into one of the outcome types,
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

    # Set only by finalize_response
    _finalized: bool = PrivateAttr(default=False)

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
        Example: insufficient funds, empty creature pool.
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
    def unknown_failure(cls, detail: str | None = None) -> "ApiResponse[Any]":
        """
        Create an unknown failure response.

        NOTE: Prefer create_unknown_failure() which auto-finalizes.
        """
        return cls(
            outcome=OutcomeType.UNKNOWN_FAILURE,
            failure=FailureDetail(
                kind=FailureKind.UNKNOWN,
                message=STANDARD_MESSAGES[OutcomeType.UNKNOWN_FAILURE],
                detail=detail,
                suggestion=STANDARD_SUGGESTIONS[OutcomeType.UNKNOWN_FAILURE],
            ),
        )


# =============================================================================
# KNOWN ERRORS
# =============================================================================


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
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

    def to_response(self) -> ApiResponse[Any]:
        """Convert to a finalized ApiResponse."""
        response = ApiResponse[Any].known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )
        return finalize_response(response)


class InvalidAmountError(KnownError):
    """Raised for non-positive coin amounts or pull counts."""

    def __init__(self, field_name: str, value: int):
        self.field_name = field_name
        self.value = value
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=f"{field_name} must be a positive integer.",
            detail=f"{field_name}={value}",
            status_code=400,
        )


class StudentNotFoundError(KnownError):
    """Raised when no wallet exists for the student."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(
            kind=FailureKind.STUDENT_NOT_FOUND,
            message="No wallet exists for this student.",
            detail=f"student_id={student_id}",
            suggestion="Open a wallet when the student account is created.",
            status_code=404,
        )


class InsufficientFundsError(KnownError):
    """
    Raised when a debit cannot be covered by the current balance.

    Surfaced before any mutation; the attempt never starts.
    """

    def __init__(self, student_id: str, balance: int, required: int):
        self.student_id = student_id
        self.balance = balance
        self.required = required
        super().__init__(
            kind=FailureKind.INSUFFICIENT_FUNDS,
            message=f"Not enough coins: {required} needed, {balance} available.",
            detail=f"balance={balance} required={required}",
            suggestion="Earn more coins by completing homework or battles.",
            status_code=409,
        )


class EmptyPoolError(KnownError):
    """Raised when a school has no creatures to draw from."""

    def __init__(self, school_id: str | None = None):
        self.school_id = school_id
        super().__init__(
            kind=FailureKind.EMPTY_POOL,
            message="There are no creatures available in the school pool.",
            detail=f"school_id={school_id}" if school_id else None,
            suggestion="Ask a teacher to add creatures to the school pool.",
            status_code=409,
        )


class InvalidCollectibleError(KnownError):
    """Raised when a creature id is not part of the school catalog."""

    def __init__(self, creature_id: str, school_id: str | None = None):
        self.creature_id = creature_id
        self.school_id = school_id
        scope = f" for school {school_id}" if school_id else ""
        super().__init__(
            kind=FailureKind.INVALID_COLLECTIBLE,
            message="That creature is not part of the catalog.",
            detail=f"Unknown creature '{creature_id}'{scope}",
            status_code=404,
        )


class GateAlreadyConsumedError(KnownError):
    """
    Raised when today's free attempt has already been used.

    Not a hard failure for a pull: the resolver treats it as "not free"
    and falls through to the paid path.
    """

    def __init__(self, student_id: str, day: str):
        self.student_id = student_id
        self.day = day
        super().__init__(
            kind=FailureKind.GATE_ALREADY_CONSUMED,
            message="Today's free attempt has already been used.",
            detail=f"date={day}",
            suggestion="The free attempt resets at midnight.",
            status_code=409,
        )


class ConcurrentModificationError(KnownError):
    """Raised when a wallet changed between read and conditional write."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(
            kind=FailureKind.CONCURRENT_MODIFICATION,
            message="Another request changed this wallet at the same time.",
            detail=f"student_id={student_id}",
            suggestion="Retry the request.",
            status_code=409,
        )


class AssignmentFailedError(KnownError):
    """Raised when an ownership record could not be written."""

    def __init__(self, creature_id: str, reason: str):
        self.creature_id = creature_id
        self.reason = reason
        super().__init__(
            kind=FailureKind.STORAGE_UNAVAILABLE,
            message="The creature could not be added to the collection.",
            detail=reason,
            status_code=503,
        )


class StorageUnavailableError(KnownError):
    """Categorized replacement for raw persistence errors."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            kind=FailureKind.STORAGE_UNAVAILABLE,
            message="Storage is temporarily unavailable. Nothing was changed.",
            detail=f"operation={operation}",
            suggestion="Please try again in a moment.",
            status_code=503,
        )


class InvalidRequestError(KnownError):
    """Raised for a request that is well-formed but cannot be applied."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=message,
            detail=detail,
            status_code=400,
        )


class CatalogConflictError(KnownError):
    """
    Raised when a school tries to write a creature id another school owns.

    Creature ids are global; a pool never takes over another pool's entry.
    """

    def __init__(self, creature_id: str, school_id: str):
        self.creature_id = creature_id
        self.school_id = school_id
        super().__init__(
            kind=FailureKind.CATALOG_CONFLICT,
            message=f"Creature '{creature_id}' already belongs to another school.",
            detail=f"creature_id={creature_id}",
            suggestion="Use a different creature id for this school.",
            status_code=409,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================
#
# All user-visible error responses MUST pass through this boundary.
#
# =============================================================================


# Standard messages — fixed, boring, predictable

STANDARD_MESSAGES: dict[OutcomeType, str] = {
    OutcomeType.UNKNOWN_FAILURE: (
        "I failed and I don't know why. Try simplifying the request or retrying."
    ),
}

STANDARD_SUGGESTIONS: dict[OutcomeType, str] = {
    OutcomeType.UNKNOWN_FAILURE: "If this persists, please report the issue.",
}


def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Every response that passes through this function is guaranteed to:
    1. Have a valid outcome classification
    2. Have appropriate failure details if not successful

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    else:
        if response.failure is None:
            raise ValueError(f"{response.outcome.value} response must have failure details")

    response._finalized = True

    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return response._finalized


def create_unknown_failure(
    exception: Exception,
    include_type: bool = True,
) -> ApiResponse[Any]:
    """
    Create an unknown failure response from an exception.

    The message is fixed and cannot be customized. Only the exception
    type name is exposed, never its text.
    """
    detail = None
    if include_type:
        detail = f"{type(exception).__name__}"

    return finalize_response(ApiResponse[Any].unknown_failure(detail=detail))

