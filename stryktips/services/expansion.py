"""
Combinatorial expansion of a coverage plan into explicit coupon rows.

A system with h halves and f fulls stands for ``2**h * 3**f`` single rows:
the cross product of the covered outcomes, match by match, in slate order.
``CombinationExpander`` turns a plan into a ``RowSet`` that produces those
rows lazily.

Row order matches iterative branching: start from one empty row, and for
each match in slate order replace every partial row with one copy per
covered outcome.  The first match therefore varies slowest, which is
exactly the order ``itertools.product`` yields.

Usage::

    rows = CombinationExpander().expand(plan)
    len(rows)            # arithmetic, nothing generated yet
    for row in rows:     # restartable
        ...
    rows.materialize()   # explicit list when really needed
"""

import itertools
import logging
from typing import Iterator, List, Optional, Sequence, Tuple

from stryktips.core.domain import GeneratedRow, Outcome
from stryktips.core.errors import SystemTooLargeError
from stryktips.core.system_config import DEFAULT_MAX_ROWS
from stryktips.services.coverage import MatchCoveragePlan
from stryktips.services.payout import PayoutEstimator

logger = logging.getLogger(__name__)


class RowSet:
    """
    Lazy, restartable sequence of the rows a coverage plan represents.

    Each call to ``iter()`` starts a fresh pass.  ``len()`` is computed from
    the coverage cardinalities and never generates rows.
    """

    def __init__(
        self,
        plans: Sequence[MatchCoveragePlan],
        payout: PayoutEstimator,
        id_prefix: str = "system_row",
    ):
        self.plans: Tuple[MatchCoveragePlan, ...] = tuple(plans)
        self.payout = payout
        self.id_prefix = id_prefix
        self._len = 1
        for plan in self.plans:
            self._len *= len(plan.outcomes)

    def __len__(self) -> int:
        return self._len

    def __iter__(self) -> Iterator[GeneratedRow]:
        probs = [p.outcome_model for p in self.plans]
        for index, outcomes in enumerate(self.iter_outcomes()):
            expected = sum(pr.get(o) for pr, o in zip(probs, outcomes))
            yield GeneratedRow(
                row_id=f"{self.id_prefix}_{index}",
                outcomes=outcomes,
                expected_correct=expected,
                expected_payout=self.payout.row_payout(expected),
            )

    def iter_outcomes(self) -> Iterator[Tuple[Outcome, ...]]:
        """Bare outcome tuples, without the per-row bookkeeping."""
        return itertools.product(*(p.outcomes for p in self.plans))

    def materialize(self) -> List[GeneratedRow]:
        return list(self)

    @property
    def expected_correct(self) -> float:
        """
        Mean expected correct count over all rows.

        Every covered outcome of a match appears in the same share of rows,
        so the mean is ``sum_i covered_prob_i / |covered_i|`` and no row has
        to be generated.
        """
        if not self.plans:
            return 0.0
        return sum(p.covered_probability / len(p.outcomes) for p in self.plans)

    @property
    def expected_payout(self) -> float:
        """Mean row payout.  Walks the rows once."""
        if self._len == 0:
            return 0.0
        total = 0.0
        for row in self:
            total += row.expected_payout
        return total / self._len


class CombinationExpander:
    """Turns coverage plans into ``RowSet``s under a row ceiling."""

    def __init__(self, max_rows: int = DEFAULT_MAX_ROWS, payout: Optional[PayoutEstimator] = None):
        if max_rows < 1:
            raise ValueError(f"max_rows must be ≥ 1, got {max_rows!r}.")
        self.max_rows = max_rows
        self.payout = payout or PayoutEstimator()

    def expand(self, plans: Sequence[MatchCoveragePlan]) -> RowSet:
        """
        Expand ``plans`` into its row set.

        Plans are taken in slate order (by ``position``), regardless of the
        order they are passed in.

        Raises:
            SystemTooLargeError: If the row count exceeds ``max_rows``.
        """
        ordered = sorted(plans, key=lambda p: p.position)
        rows = RowSet(ordered, self.payout)
        if len(rows) > self.max_rows:
            raise SystemTooLargeError(len(rows), self.max_rows)
        logger.info("Expanded plan over %d matches into %d rows", len(ordered), len(rows))
        return rows
