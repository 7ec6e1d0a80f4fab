"""
Independent single-row generator.

Where a system covers several outcomes per match and expands them, this
module draws whole rows one at a time, each with exactly one outcome per
match.  Rows are sampled from risk-adjusted probabilities, screened against
``RowFilters`` and de-duplicated.

Strategies
----------
    weighted-random     sample each match from its adjusted probabilities
    ev-based            best expected value, with a 15 % chance per match of
                        falling back to a weighted draw
    multi-row-coverage  weighted-random; kept as a separate name so callers
                        can express intent
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from stryktips.core.domain import (
    ALL_OUTCOMES,
    GeneratedRow,
    MatchOdds,
    Outcome,
    Probabilities,
    RiskProfile,
)
from stryktips.core.odds_math import adjust_for_risk, normalize_odds
from stryktips.services.payout import PayoutEstimator
from stryktips.services.signals import value_pick

logger = logging.getLogger(__name__)

# Probability of a weighted draw instead of the best-EV pick.
EV_RANDOMNESS = 0.15

# Attempts allowed per requested row before giving up.
ATTEMPTS_PER_ROW = 10


class RowStrategy(str, Enum):
    WEIGHTED_RANDOM = "weighted-random"
    EV_BASED = "ev-based"
    MULTI_ROW_COVERAGE = "multi-row-coverage"


@dataclass
class RowFilters:
    """
    Constraints a generated row must satisfy.

    ``max_favorites`` only applies together with ``max_odds_below``: at most
    ``max_favorites`` picks may be priced under ``max_odds_below``.
    ``personal_biases`` forces an outcome for a match id.
    """

    min_draws: Optional[int] = None
    max_draws: Optional[int] = None
    min_away_wins: Optional[int] = None
    max_away_wins: Optional[int] = None
    max_favorites: Optional[int] = None
    max_odds_below: Optional[float] = None
    personal_biases: Dict[str, Outcome] = field(default_factory=dict)

    def accepts(self, outcomes: Sequence[Outcome], matches: Sequence[MatchOdds]) -> bool:
        draws = sum(1 for o in outcomes if o is Outcome.DRAW)
        away_wins = sum(1 for o in outcomes if o is Outcome.AWAY)

        if self.min_draws is not None and draws < self.min_draws:
            return False
        if self.max_draws is not None and draws > self.max_draws:
            return False
        if self.min_away_wins is not None and away_wins < self.min_away_wins:
            return False
        if self.max_away_wins is not None and away_wins > self.max_away_wins:
            return False

        if self.max_favorites is not None and self.max_odds_below is not None:
            favorites = sum(
                1 for o, m in zip(outcomes, matches) if m.price(o) < self.max_odds_below
            )
            if favorites > self.max_favorites:
                return False
        return True


def diversity_score(rows: Sequence[GeneratedRow]) -> float:
    """
    Mean pairwise Hamming distance between rows, divided by row length.

    1.0 for fewer than two rows.
    """
    if len(rows) < 2:
        return 1.0
    codes = np.asarray([[ALL_OUTCOMES.index(o) for o in r.outcomes] for r in rows])
    n_rows, width = codes.shape
    total = 0
    for i in range(n_rows - 1):
        total += int((codes[i + 1:] != codes[i]).sum())
    comparisons = n_rows * (n_rows - 1) // 2
    return total / (comparisons * width)


class RowGenerator:
    """
    Draws independent rows for a slate.

    Args:
        matches: The slate.
        profile: Risk profile used to skew sampling probabilities.
        strategy: One of ``RowStrategy``.
        filters: Row constraints.
        rng: Random source.
    """

    def __init__(
        self,
        matches: Sequence[MatchOdds],
        profile: RiskProfile = RiskProfile.BALANCED,
        strategy: RowStrategy = RowStrategy.WEIGHTED_RANDOM,
        filters: Optional[RowFilters] = None,
        rng: Optional[np.random.Generator] = None,
        payout: Optional[PayoutEstimator] = None,
    ):
        for match in matches:
            match.validate()
        self.matches = list(matches)
        self.profile = RiskProfile.parse(profile)
        self.strategy = RowStrategy(strategy)
        self.filters = filters or RowFilters()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.payout = payout or PayoutEstimator()

        self.base_probabilities: List[Probabilities] = [normalize_odds(m) for m in self.matches]
        self.adjusted_probabilities: List[Probabilities] = [
            adjust_for_risk(p, self.profile) for p in self.base_probabilities
        ]

    def _weighted(self, probs: Probabilities) -> Outcome:
        u = self.rng.random()
        if u < probs.home:
            return Outcome.HOME
        if u < probs.home + probs.draw:
            return Outcome.DRAW
        return Outcome.AWAY

    def _pick(self, match: MatchOdds, probs: Probabilities) -> Outcome:
        forced = self.filters.personal_biases.get(match.match_id)
        if forced is not None:
            return Outcome.parse(forced)
        if self.strategy is RowStrategy.EV_BASED:
            if self.rng.random() < EV_RANDOMNESS:
                return self._weighted(probs)
            return value_pick(probs, match)
        return self._weighted(probs)

    def generate_row(self, row_id: Optional[str] = None) -> Optional[GeneratedRow]:
        """
        One candidate row, or ``None`` if it fails the filters.

        Expected correct is measured against the unskewed probabilities.
        """
        outcomes = tuple(
            self._pick(m, p) for m, p in zip(self.matches, self.adjusted_probabilities)
        )
        if not self.filters.accepts(outcomes, self.matches):
            return None
        expected = sum(p.get(o) for p, o in zip(self.base_probabilities, outcomes))
        return GeneratedRow(
            row_id=row_id or f"row_{uuid.uuid4().hex[:9]}",
            outcomes=outcomes,
            expected_correct=expected,
            expected_payout=self.payout.row_payout(expected),
        )

    def generate_rows(self, n: int) -> List[GeneratedRow]:
        """
        Up to ``n`` distinct rows passing the filters.

        Gives up after ``10 * n`` attempts, so a very restrictive filter set
        returns fewer rows rather than looping forever.
        """
        if n < 1:
            raise ValueError(f"n must be ≥ 1, got {n!r}.")
        rows: List[GeneratedRow] = []
        seen = set()
        attempts = 0
        while len(rows) < n and attempts < n * ATTEMPTS_PER_ROW:
            attempts += 1
            row = self.generate_row(row_id=f"row_{len(rows)}")
            if row is None or row.outcomes in seen:
                continue
            seen.add(row.outcomes)
            rows.append(row)

        if len(rows) < n:
            logger.warning("Only %d of %d rows generated after %d attempts", len(rows), n, attempts)
        else:
            logger.info("Generated %d rows in %d attempts", len(rows), attempts)
        return rows
