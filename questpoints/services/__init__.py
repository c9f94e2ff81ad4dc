"""
QuestPoints services.

Gacha draw logic: weighted selection, ledger debits, spin orchestration,
published rates, draw history and request rate limiting.
"""

from questpoints.services.gacha import (
    GachaConfig,
    GachaService,
    PersistenceFailureError,
    get_gacha_service,
    reset_gacha_service,
)
from questpoints.services.history import get_draw_history, group_by_batch
from questpoints.services.ledger import InsufficientFundsError, debit_points
from questpoints.services.rate_limit import (
    RateLimitExceededError,
    RateLimiter,
    get_public_list_rate_limiter,
    get_spin_rate_limiter,
    reset_rate_limiters,
)
from questpoints.services.rates import get_rates
from questpoints.services.weighted_selector import (
    CumulativeTable,
    InvalidCatalogError,
    InvalidWeightsError,
    SelectionFailureError,
    build_cumulative_table,
    weight_for,
)

__all__ = [
    "CumulativeTable",
    "GachaConfig",
    "GachaService",
    "InsufficientFundsError",
    "InvalidCatalogError",
    "InvalidWeightsError",
    "PersistenceFailureError",
    "RateLimitExceededError",
    "RateLimiter",
    "SelectionFailureError",
    "build_cumulative_table",
    "debit_points",
    "get_draw_history",
    "get_gacha_service",
    "get_public_list_rate_limiter",
    "get_rates",
    "get_spin_rate_limiter",
    "group_by_batch",
    "reset_gacha_service",
    "reset_rate_limiters",
    "weight_for",
]
