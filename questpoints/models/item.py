from dataclasses import dataclass
from enum import Enum


class Rarity(str, Enum):
    """Rarity categories an item can belong to."""

    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass(frozen=True, slots=True)
class Item:
    """
    A catalog item that can be drawn from the gacha.

    Attributes:
        id: Catalog identity
        name: Display name
        rarity: Rarity category, one of the Rarity values
        power: Optional numeric strength, used when the item is consumed
    """

    id: int
    name: str
    rarity: str
    power: int | None = None
