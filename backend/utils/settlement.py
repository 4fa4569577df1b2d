"""Settlement planning: turn net balances into a short list of peer-to-peer payments.

Greedy extremes matching. The largest creditor is repeatedly paid by the
largest debtor until one side runs out. For k members with a nonzero balance
this yields at most k - 1 payments. Finding the true minimum number of
payments is NP-hard; this is the usual approximation.

Pure and stateless: safe to call from any number of requests at once.
"""

import heapq
import logging
import warnings
from dataclasses import dataclass
from typing import Iterable

from utils.errors import RoundingResidual


logger = logging.getLogger(__name__)

# Balances within one paise of zero count as settled
SETTLEMENT_TOLERANCE = 1


@dataclass(frozen=True)
class Transfer:
    from_user_id: int
    to_user_id: int
    amount: int


def plan_settlements(balances: Iterable) -> list[Transfer]:
    """
    Suggest payments that bring every balance to zero.

    Args:
        balances: objects with ``user_id`` and ``net`` (paise, positive = owed money)

    Returns:
        Transfers in the order they were matched. Identical input always gives
        identical output: ties on amount go to the lower user id.
    """
    # Heap entries: (-remaining, user_id), i.e. largest first then lowest id
    creditors = []
    debtors = []
    for balance in balances:
        if balance.net > SETTLEMENT_TOLERANCE:
            creditors.append((-balance.net, balance.user_id))
        elif balance.net < -SETTLEMENT_TOLERANCE:
            debtors.append((balance.net, balance.user_id))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers = []
    while creditors and debtors:
        neg_credit, creditor_id = heapq.heappop(creditors)
        neg_debt, debtor_id = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = min(credit, debt)
        transfers.append(Transfer(from_user_id=debtor_id, to_user_id=creditor_id, amount=amount))

        credit -= amount
        debt -= amount
        if credit > SETTLEMENT_TOLERANCE:
            heapq.heappush(creditors, (-credit, creditor_id))
        if debt > SETTLEMENT_TOLERANCE:
            heapq.heappush(debtors, (-debt, debtor_id))

    residual = sum(-r for r, _ in creditors) + sum(-r for r, _ in debtors)
    if residual:
        side = "creditors" if creditors else "debtors"
        message = f"Settlement left {residual} paise unmatched among {side}; balances do not sum to zero"
        logger.warning(message)
        warnings.warn(message, RoundingResidual, stacklevel=2)

    return transfers
