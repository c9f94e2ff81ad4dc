from dataclasses import dataclass, field
from datetime import datetime

from questpoints.models.item import Item


@dataclass(frozen=True, slots=True)
class DrawResult:
    """
    One completed draw.

    Attributes:
        item: The item that was drawn
        record_id: Identity of the persisted draw record
        inventory_id: Identity of the inventory grant created with it
        drawn_at: When the draw record was created
        batch_id: Batch grouping, if the draw belongs to a recorded batch
    """

    item: Item
    record_id: int
    inventory_id: int
    drawn_at: datetime
    batch_id: int | None = None


@dataclass(frozen=True, slots=True)
class SpinResult:
    """Outcome of a single paid draw."""

    draw: DrawResult
    cost: int
    remaining_balance: int


@dataclass(frozen=True, slots=True)
class BatchSpinResult:
    """Outcome of an N-draw batch charged as one debit."""

    results: list[DrawResult]
    total_cost: int
    remaining_balance: int
    batch_id: int | None = None

    @property
    def count(self) -> int:
        return len(self.results)


@dataclass(frozen=True)
class GachaRates:
    """Published draw weights and their normalized probabilities."""

    weights: dict[str, int] = field(default_factory=dict)
    probabilities: dict[str, float] = field(default_factory=dict)

    def total_weight(self) -> int:
        return sum(self.weights.values())


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """A past draw as shown to its owner."""

    id: int
    item: Item
    drawn_at: datetime
    batch_id: int | None = None
