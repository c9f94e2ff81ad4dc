"""
Rates Publisher: draw weights and probabilities for client display.

Reads the same RARITY_WEIGHTS constant the selector draws with, so the
published rates cannot drift from the real ones.
"""

from collections.abc import Mapping

from questpoints.config import RARITY_WEIGHTS
from questpoints.models.gacha import GachaRates
from questpoints.services.weighted_selector import InvalidWeightsError, weight_for


def get_rates(weights: Mapping[str, int] = RARITY_WEIGHTS) -> GachaRates:
    """
    Publish the weight table and each rarity's share of the total.

    Raises:
        InvalidWeightsError: If the table is empty
    """
    effective = {rarity: weight_for(rarity, weights) for rarity in weights}
    total = sum(effective.values())
    if total <= 0:
        raise InvalidWeightsError(total)

    probabilities = {rarity: weight / total for rarity, weight in effective.items()}
    return GachaRates(weights=effective, probabilities=probabilities)
