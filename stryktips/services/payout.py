"""
Approximate Stryktipset payouts.

The real coupon is pari-mutuel: the prize for k correct depends on the
pool size and on how many other players also reached k, neither of which
is known before the round.  This module replaces that with a fixed,
monotonic step function:

    13 correct   50 000
    12 correct    5 000
    11 correct      500
    10 correct       50
    < 10              0

The numbers are order-of-magnitude tiers, not a forecast.  Use them to
compare systems against each other, never to predict a return.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# (threshold, payout) in descending threshold order.
DEFAULT_TIERS: Tuple[Tuple[int, float], ...] = (
    (13, 50_000.0),
    (12, 5_000.0),
    (11, 500.0),
    (10, 50.0),
)

# Correct counts reported by the simulator.
PRIZE_LEVELS: Tuple[int, ...] = (10, 11, 12, 13)


@dataclass(frozen=True)
class PayoutTable:
    """
    Step function from correct count to payout.

    ``tiers`` must be in strictly descending threshold order with
    non-increasing payouts, so the function is monotonic.
    """

    tiers: Tuple[Tuple[int, float], ...] = DEFAULT_TIERS

    def __post_init__(self):
        thresholds = [t for t, _ in self.tiers]
        payouts = [p for _, p in self.tiers]
        if thresholds != sorted(set(thresholds), reverse=True):
            raise ValueError(f"Payout thresholds must be strictly descending, got {thresholds!r}.")
        if payouts != sorted(payouts, reverse=True) or any(p < 0 for p in payouts):
            raise ValueError(f"Payouts must be non-negative and non-increasing, got {payouts!r}.")

    def payout(self, correct: float) -> float:
        """
        Payout for ``correct`` right results.

        Works for integer simulated counts and for a row's fractional
        expected count alike: 11.7 expected correct pays the 11 tier.
        """
        for threshold, amount in self.tiers:
            if correct >= threshold:
                return amount
        return 0.0

    def payout_array(self, correct: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`payout` over an array of counts."""
        result = np.zeros(np.shape(correct), dtype=float)
        # ascending so higher tiers overwrite lower ones
        for threshold, amount in reversed(self.tiers):
            result = np.where(correct >= threshold, amount, result)
        return result

    def expected_payout(self, exact_probabilities: Dict[int, float]) -> float:
        """``sum_k P(exactly k) * payout(k)``."""
        return sum(p * self.payout(k) for k, p in exact_probabilities.items())

    def to_dict(self) -> Dict[str, float]:
        return {str(t): amount for t, amount in self.tiers}


class PayoutEstimator:
    """Thin service wrapper used by the system generator and simulator."""

    def __init__(self, table: PayoutTable = PayoutTable()):
        self.table = table

    def estimate(self, correct: float) -> float:
        return self.table.payout(correct)

    def row_payout(self, expected_correct: float) -> float:
        return self.table.payout(expected_correct)

    def system_payout(self, expected_corrects: Sequence[float]) -> float:
        """Mean row payout over a system, 0 for an empty system."""
        if len(expected_corrects) == 0:
            return 0.0
        return float(np.mean(self.table.payout_array(np.asarray(expected_corrects, dtype=float))))
