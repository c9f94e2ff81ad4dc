"""
Balance Ledger Guard: atomic, fail-closed point debits.

A debit is a single conditional UPDATE (compare-and-decrement). There is
no read-then-write window, so concurrent spins by the same user serialize
on the balance row and at most one of them can spend the last points.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.db.operations import conditional_decrement
from questpoints.models.failure import FailureKind, KnownError

logger = logging.getLogger(__name__)


class InsufficientFundsError(KnownError):
    """
    Raised when the balance does not cover the cost at debit time.

    Terminal for the whole spin: nothing else is written.
    """

    def __init__(self, user_id: int, required: int):
        self.user_id = user_id
        self.required = required
        super().__init__(
            kind=FailureKind.INSUFFICIENT_FUNDS,
            message="You don't have enough points for this spin.",
            detail=f"required={required}",
            suggestion="Complete more tasks to earn points, then try again.",
            status_code=402,
        )


async def debit_points(session: AsyncSession, user_id: int, amount: int) -> None:
    """
    Take `amount` points from a user, or fail without touching the balance.

    Raises:
        ValueError: If amount is not positive
        InsufficientFundsError: If the balance is below amount
    """
    if amount <= 0:
        msg = f"Debit amount must be positive, got {amount}"
        raise ValueError(msg)

    if not await conditional_decrement(session, user_id, amount):
        logger.info(
            "LEDGER_DEBIT_REJECTED",
            extra={"user_id": user_id, "amount": amount},
        )
        raise InsufficientFundsError(user_id, amount)
