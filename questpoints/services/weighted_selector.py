"""
Weighted Selector: Rarity-Weighted Item Draws.

Maps a catalog and a uniform random draw to one item. Each item weighs
as much as its rarity (see RARITY_WEIGHTS); unknown rarities and
non-positive weights count as 1.

ALGORITHM:
- Build a cumulative table over the catalog in catalog order
- Draw r uniformly from [1, total_weight]
- Pick the first entry whose cumulative boundary is >= r

The table is built once per spin request and reused for every draw of a
batch; only r is re-sampled per draw.

With the default catalog order the rarest items can sit at the low end of
the draw range. That ordering is kept as-is so existing draws replay
identically.
"""

import random
from bisect import bisect_left
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from questpoints.config import RARITY_WEIGHTS
from questpoints.models.failure import FailureKind, KnownError

# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class InvalidCatalogError(KnownError):
    """
    Raised when there is nothing to draw from.

    Checked before any debit; the user is never charged.
    """

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.EMPTY_RESULT,
            message="There are no items in the gacha right now.",
            detail="Item catalog is empty",
            suggestion="Try again once items have been added.",
            status_code=400,
        )


class InvalidWeightsError(KnownError):
    """Raised when the weight table sums to zero or less."""

    def __init__(self, total_weight: int):
        self.total_weight = total_weight
        super().__init__(
            kind=FailureKind.INVARIANT_VIOLATION,
            message="Gacha weights are misconfigured.",
            detail=f"total_weight={total_weight}",
            status_code=500,
        )


class SelectionFailureError(KnownError):
    """
    Raised when a draw value falls outside the cumulative table.

    Unreachable with a valid table; surfaces as a generic server error.
    """

    def __init__(self, draw_value: int, total_weight: int):
        self.draw_value = draw_value
        self.total_weight = total_weight
        super().__init__(
            kind=FailureKind.INVARIANT_VIOLATION,
            message="Could not choose an item.",
            detail=f"r={draw_value}, total_weight={total_weight}",
            status_code=500,
        )


# =============================================================================
# CUMULATIVE TABLE
# =============================================================================


class Drawable(Protocol):
    """Anything carrying a rarity can be drawn."""

    @property
    def rarity(self) -> str: ...


T = TypeVar("T", bound=Drawable)


def weight_for(rarity: str, weights: Mapping[str, int] = RARITY_WEIGHTS) -> int:
    """Weight of a rarity; missing or non-positive weights count as 1."""
    weight = weights.get(rarity, 0)
    return weight if weight > 0 else 1


@dataclass(frozen=True)
class CumulativeTable(Generic[T]):
    """
    Items paired with running weight totals.

    boundaries[i] is the sum of the weights of items[0..i], so the last
    boundary equals total_weight.
    """

    items: tuple[T, ...]
    boundaries: tuple[int, ...]

    @property
    def total_weight(self) -> int:
        return self.boundaries[-1] if self.boundaries else 0

    def select(self, r: int) -> T:
        """
        Pick the first item whose boundary is >= r.

        Raises:
            SelectionFailureError: If r is outside [1, total_weight]
        """
        if r < 1 or r > self.total_weight:
            raise SelectionFailureError(r, self.total_weight)
        return self.items[bisect_left(self.boundaries, r)]

    def draw(self, rng: random.Random) -> T:
        """Sample r uniformly from [1, total_weight] and select."""
        return self.select(rng.randint(1, self.total_weight))

    def draw_many(self, rng: random.Random, count: int) -> list[T]:
        """Independent draws against the same table."""
        return [self.draw(rng) for _ in range(count)]


def build_cumulative_table(
    items: Sequence[T],
    weights: Mapping[str, int] = RARITY_WEIGHTS,
) -> CumulativeTable[T]:
    """
    Build the cumulative weight table for a catalog.

    Raises:
        InvalidCatalogError: If the catalog is empty
        InvalidWeightsError: If the weights sum to zero or less
    """
    if not items:
        raise InvalidCatalogError()

    boundaries: list[int] = []
    total = 0
    for item in items:
        total += weight_for(item.rarity, weights)
        boundaries.append(total)

    if total <= 0:
        raise InvalidWeightsError(total)

    return CumulativeTable(items=tuple(items), boundaries=tuple(boundaries))
