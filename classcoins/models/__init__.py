from classcoins.models.economy import (
    BatchPlan,
    BatchResult,
    CoinTransaction,
    CreatureEntry,
    HistoryEntry,
    MysteryBallStatus,
    Outcome,
    OutcomeKind,
    OwnershipRecord,
    ProbabilityTable,
    Wallet,
)
from classcoins.models.failure import (
    STANDARD_MESSAGES,
    STANDARD_SUGGESTIONS,
    ApiResponse,
    AssignmentFailedError,
    CatalogConflictError,
    ConcurrentModificationError,
    EmptyPoolError,
    FailureDetail,
    FailureKind,
    GateAlreadyConsumedError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidCollectibleError,
    InvalidRequestError,
    KnownError,
    OutcomeType,
    StorageUnavailableError,
    StudentNotFoundError,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)

__all__ = [
    "ApiResponse",
    "AssignmentFailedError",
    "CatalogConflictError",
    "BatchPlan",
    "BatchResult",
    "CoinTransaction",
    "ConcurrentModificationError",
    "CreatureEntry",
    "EmptyPoolError",
    "FailureDetail",
    "FailureKind",
    "GateAlreadyConsumedError",
    "HistoryEntry",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidCollectibleError",
    "InvalidRequestError",
    "KnownError",
    "MysteryBallStatus",
    "Outcome",
    "OutcomeKind",
    "OutcomeType",
    "OwnershipRecord",
    "ProbabilityTable",
    "STANDARD_MESSAGES",
    "STANDARD_SUGGESTIONS",
    "StorageUnavailableError",
    "StudentNotFoundError",
    "Wallet",
    "create_unknown_failure",
    "finalize_response",
    "is_finalized",
]
