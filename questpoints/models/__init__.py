from questpoints.models.failure import (
    ApiResponse,
    FailureDetail,
    FailureKind,
    KnownError,
    NotOwnerError,
    OutcomeType,
    OwnedItemNotFoundError,
    UserNotFoundError,
)
from questpoints.models.gacha import (
    BatchSpinResult,
    DrawResult,
    GachaRates,
    HistoryEntry,
    SpinResult,
)
from questpoints.models.item import Item, Rarity

__all__ = [
    "ApiResponse",
    "BatchSpinResult",
    "DrawResult",
    "FailureDetail",
    "FailureKind",
    "GachaRates",
    "HistoryEntry",
    "Item",
    "KnownError",
    "NotOwnerError",
    "OutcomeType",
    "OwnedItemNotFoundError",
    "Rarity",
    "SpinResult",
    "UserNotFoundError",
]
