"""
Coverage allocation: which matches get halves, fulls and singles.

Given a slate, a probability triple per match and a target
``SystemConfiguration``, the allocator decides each match's coverage class
and the concrete outcome(s) it covers.  The result is a list of
``MatchCoveragePlan`` objects in original slate order, ready for
``CombinationExpander``.

Algorithm
---------
1. Strategic value per match = 0.6 * uncertainty + 0.4 * value, where
   uncertainty is normalised entropy and value is the best edge squashed
   onto [0, 1].  High strategic value means multi-outcome coverage pays.
2. Rank matches by descending strategic value.
3. Perturb the ranking according to the risk profile:

       safe      untouched
       balanced  with p = 0.7, three random swaps in ranks 4..8
       risky     noise on every score, re-sort, 50-100 % random swaps,
                 full reversal with p = 0.3

4. Walk the ranking once: the first ``halves`` matches get a half cover,
   the next ``fulls`` a full cover, the rest a single.
5. Pick outcomes inside each class from the match's intelligence signal.

Every random draw comes from the injected ``numpy.random.Generator`` and
every threshold lives in ``ChaosParameters``, so a seeded allocator is
fully reproducible.

Usage::

    allocator = CoverageAllocator(RiskProfile.BALANCED, rng=np.random.default_rng(7))
    plan = allocator.allocate(matches, probabilities, SystemConfiguration.system_96())
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from stryktips.core.domain import (
    ALL_OUTCOMES,
    CoverageClass,
    MatchOdds,
    Outcome,
    Probabilities,
    RiskProfile,
    outcome_symbol,
)
from stryktips.core.errors import ConfigurationMismatchError
from stryktips.core.kelly import value_score
from stryktips.core.odds_math import normalize_odds, normalized_entropy
from stryktips.core.signal_interface import BaseSignalProvider, IntelligenceSignal
from stryktips.core.system_config import SystemConfiguration
from stryktips.services.signals import OddsSignalProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChaosParameters:
    """
    Every tunable threshold of the allocator.

    The defaults reproduce the behaviour the coupon generator has always
    had; none of them is calibrated against results.  Override with
    ``dataclasses.replace(ChaosParameters(), risky_reverse_prob=0.0)``.
    """

    # Strategic value
    uncertainty_weight: float = 0.6
    value_weight: float = 0.4

    # Balanced ranking perturbation
    balanced_shuffle_prob: float = 0.7
    balanced_window_start: int = 4
    balanced_window_end: int = 9  # exclusive
    balanced_swaps: int = 3

    # Risky ranking perturbation
    risky_noise_span: float = 0.8  # score += (u - 0.5) * span
    risky_min_swap_share: float = 0.5
    risky_swap_share_span: float = 0.5
    risky_reverse_prob: float = 0.3

    # Half covers
    balanced_half_confidence: float = 0.7
    risky_contrarian_base: float = 0.2
    risky_contrarian_scale: float = 0.8
    risky_contrarian_first_pair: float = 0.33
    risky_contrarian_second_pair: float = 0.66
    risky_value_partner: float = 0.6
    risky_value_first_pair: float = 0.8

    # Singles
    balanced_single_confidence: float = 0.65
    risky_uniform_prob: float = 0.25
    risky_avoid_prob: float = 0.5  # cumulative with risky_uniform_prob
    risky_value_weight: float = 0.4
    risky_contrarian_weight: float = 0.35
    risky_safe_weight: float = 0.25
    risky_chaos_min: float = 0.5
    risky_chaos_span: float = 1.0
    risky_contrarian_boost_threshold: float = 0.6
    risky_contrarian_boost_span: float = 0.5
    risky_strategy_shuffle_prob: float = 0.3


@dataclass(frozen=True)
class MatchCoveragePlan:
    """Coverage decision for one match on the slate."""

    match_id: str
    position: int
    coverage: CoverageClass
    outcomes: Tuple[Outcome, ...]
    probabilities: Probabilities
    odds: MatchOdds
    strategic_value: float = 0.0
    market_probabilities: Optional[Probabilities] = None

    def __post_init__(self):
        if len(self.outcomes) != self.coverage.cardinality:
            raise ValueError(
                f"{self.coverage.name} coverage needs {self.coverage.cardinality} outcomes, "
                f"got {self.outcomes!r} for match {self.match_id!r}."
            )
        if len(set(self.outcomes)) != len(self.outcomes):
            raise ValueError(f"Duplicate outcomes {self.outcomes!r} for match {self.match_id!r}.")

    @property
    def symbol(self) -> str:
        return outcome_symbol(self.outcomes)

    @property
    def outcome_model(self) -> Probabilities:
        """
        Probabilities of the realised result.

        ``probabilities`` may be skewed by the risk profile to steer
        allocation; results are scored against the de-vigged market triple
        when the plan carries one.
        """
        if self.market_probabilities is not None:
            return self.market_probabilities
        return self.probabilities

    @property
    def covered_probability(self) -> float:
        """Probability that the realised result is one of the covered outcomes."""
        return sum(self.outcome_model.get(o) for o in self.outcomes)

    def covers(self, outcome: Outcome) -> bool:
        return outcome in self.outcomes

    def to_dict(self) -> Dict:
        return {
            "match_id": self.match_id,
            "position": self.position,
            "home_team": self.odds.home_team,
            "away_team": self.odds.away_team,
            "coverage": self.coverage.name.lower(),
            "system_outcome": self.symbol,
            "probabilities": {k: round(v, 4) for k, v in self.probabilities.to_dict().items()},
            "market_probabilities": {
                k: round(v, 4) for k, v in self.outcome_model.to_dict().items()
            },
            "odds": {"home": self.odds.home, "draw": self.odds.draw, "away": self.odds.away},
            "strategic_value": round(self.strategic_value, 4),
        }


def strategic_value(
    probs: Probabilities,
    odds: MatchOdds,
    chaos: Optional[ChaosParameters] = None,
) -> float:
    """Weighted blend of uncertainty and value for one match."""
    chaos = chaos or ChaosParameters()
    return (
        chaos.uncertainty_weight * normalized_entropy(probs)
        + chaos.value_weight * value_score(probs, odds)
    )


def _others(pick: Outcome) -> Tuple[Outcome, Outcome]:
    """The two outcomes other than ``pick``, in coupon order."""
    a, b = (o for o in ALL_OUTCOMES if o != pick)
    return a, b


def _partner_half(pick: Outcome, probs: Probabilities) -> Tuple[Outcome, ...]:
    """``pick`` plus the likelier of the other two (ties go to the later one)."""
    first, second = _others(pick)
    partner = first if probs.get(first) > probs.get(second) else second
    return _ordered((pick, partner))


def _ordered(outcomes: Sequence[Outcome]) -> Tuple[Outcome, ...]:
    chosen = set(outcomes)
    return tuple(o for o in ALL_OUTCOMES if o in chosen)


class CoverageAllocator:
    """
    One-shot, non-backtracking coverage allocator.

    Args:
        profile: Risk profile driving ranking perturbation and outcome choice.
        rng: Random source.  A fresh unseeded generator when omitted.
        signal_provider: Source of per-match picks.  Defaults to the
            odds-derived provider.
        chaos: Tunable thresholds.
    """

    def __init__(
        self,
        profile: RiskProfile,
        rng: Optional[np.random.Generator] = None,
        signal_provider: Optional[BaseSignalProvider] = None,
        chaos: Optional[ChaosParameters] = None,
    ):
        if signal_provider is not None and not isinstance(signal_provider, BaseSignalProvider):
            raise TypeError(
                f"signal_provider must be a BaseSignalProvider, got {type(signal_provider).__name__}."
            )
        self.profile = RiskProfile.parse(profile)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.signal_provider = signal_provider or OddsSignalProvider()
        self.chaos = chaos or ChaosParameters()

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def rank(self, scores: Sequence[float]) -> List[int]:
        """
        Slate indices ordered for assignment, after profile perturbation.

        ``scores`` are the unperturbed strategic values in slate order.
        """
        order = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)

        if self.profile is RiskProfile.BALANCED:
            order = self._perturb_balanced(order)
        elif self.profile is RiskProfile.RISKY:
            order = self._perturb_risky(order, scores)
        return order

    def _perturb_balanced(self, order: List[int]) -> List[int]:
        c = self.chaos
        if self.rng.random() >= c.balanced_shuffle_prob:
            return order
        head = order[:c.balanced_window_start]
        middle = order[c.balanced_window_start:c.balanced_window_end]
        tail = order[c.balanced_window_end:]
        if middle:
            for _ in range(c.balanced_swaps):
                i = int(self.rng.integers(len(middle)))
                j = int(self.rng.integers(len(middle)))
                middle[i], middle[j] = middle[j], middle[i]
        logger.debug("Balanced profile: middle window shuffled")
        return head + middle + tail

    def _perturb_risky(self, order: List[int], scores: Sequence[float]) -> List[int]:
        c = self.chaos
        noisy = {i: scores[i] + (self.rng.random() - 0.5) * c.risky_noise_span for i in order}
        order = sorted(order, key=lambda i: noisy[i], reverse=True)

        n = len(order)
        share = c.risky_min_swap_share + self.rng.random() * c.risky_swap_share_span
        for _ in range(math.floor(n * share)):
            i = int(self.rng.integers(n))
            j = int(self.rng.integers(n))
            order[i], order[j] = order[j], order[i]

        if self.rng.random() < c.risky_reverse_prob:
            order.reverse()
            logger.debug("Risky profile: assignment order reversed")
        return order

    # ------------------------------------------------------------------
    # Outcome selection
    # ------------------------------------------------------------------

    def select_half(self, signal: IntelligenceSignal, probs: Probabilities) -> Tuple[Outcome, ...]:
        """Two covered outcomes for a half cover."""
        c = self.chaos
        if self.profile is RiskProfile.SAFE:
            return _partner_half(signal.safe_pick, probs)

        if self.profile is RiskProfile.BALANCED:
            base = signal.safe_pick if signal.confidence > c.balanced_half_confidence else signal.value_pick
            return _partner_half(base, probs)

        use_contrarian = self.rng.random() < (
            signal.contrarian_score * c.risky_contrarian_scale + c.risky_contrarian_base
        )
        u = self.rng.random()
        if use_contrarian:
            pick = signal.contrarian_pick
            first, second = _others(pick)
            if u < c.risky_contrarian_first_pair:
                return _ordered((pick, first))
            if u < c.risky_contrarian_second_pair:
                return _ordered((pick, second))
            return _partner_half(pick, probs)

        pick = signal.value_pick
        first, second = _others(pick)
        if u < c.risky_value_partner:
            return _partner_half(pick, probs)
        if u < c.risky_value_first_pair:
            return _ordered((pick, first))
        return _ordered((pick, second))

    def select_single(self, signal: IntelligenceSignal) -> Outcome:
        """One covered outcome for a single."""
        c = self.chaos
        if self.profile is RiskProfile.SAFE:
            return signal.safe_pick

        if self.profile is RiskProfile.BALANCED:
            if signal.confidence > c.balanced_single_confidence:
                return signal.safe_pick
            return signal.value_pick

        u = self.rng.random()
        if u < c.risky_uniform_prob:
            return ALL_OUTCOMES[int(self.rng.integers(len(ALL_OUTCOMES)))]

        if u < c.risky_avoid_prob:
            suggested = {signal.safe_pick, signal.value_pick, signal.contrarian_pick}
            unused = [o for o in ALL_OUTCOMES if o not in suggested]
            if unused:
                return unused[int(self.rng.integers(len(unused)))]

        chaos_multiplier = c.risky_chaos_min + self.rng.random() * c.risky_chaos_span
        strategies = [
            [signal.value_pick, c.risky_value_weight * chaos_multiplier],
            [signal.contrarian_pick, c.risky_contrarian_weight * chaos_multiplier],
            [signal.safe_pick, c.risky_safe_weight * chaos_multiplier],
        ]
        if signal.contrarian_score > c.risky_contrarian_boost_threshold:
            strategies[1][1] *= 1.0 + self.rng.random() * c.risky_contrarian_boost_span

        if self.rng.random() < c.risky_strategy_shuffle_prob:
            strategies = [strategies[i] for i in self.rng.permutation(len(strategies))]

        total = sum(weight for _, weight in strategies)
        target = self.rng.random() * total
        cumulative = 0.0
        for pick, weight in strategies:
            cumulative += weight
            if target <= cumulative:
                return pick
        return signal.value_pick

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(
        self,
        matches: Sequence[MatchOdds],
        probabilities: Sequence[Probabilities],
        config: SystemConfiguration,
    ) -> List[MatchCoveragePlan]:
        """
        Build the coverage plan for a slate.

        Args:
            matches: The slate, in coupon order.
            probabilities: One (risk-adjusted) triple per match.
            config: Target distribution of halves, fulls and singles.

        Returns:
            One ``MatchCoveragePlan`` per match, in the original order.

        Raises:
            ConfigurationMismatchError: If the configuration does not cover
                exactly ``len(matches)`` matches.
        """
        if len(probabilities) != len(matches):
            raise ValueError(
                f"Got {len(matches)} matches but {len(probabilities)} probability triples."
            )
        if config.halves + config.fulls + config.singles != len(matches):
            raise ConfigurationMismatchError(
                f"Configuration covers {config.halves + config.fulls + config.singles} matches "
                f"but the slate has {len(matches)}."
            )

        signals = self.signal_provider.signals_for_slate(matches, probabilities)
        scores = [strategic_value(p, m, self.chaos) for m, p in zip(matches, probabilities)]
        order = self.rank(scores)

        plans: List[Optional[MatchCoveragePlan]] = [None] * len(matches)
        for rank_pos, idx in enumerate(order):
            match, probs = matches[idx], probabilities[idx]
            signal = signals[match.match_id]
            if rank_pos < config.halves:
                coverage = CoverageClass.HALF
                outcomes = self.select_half(signal, probs)
            elif rank_pos < config.halves + config.fulls:
                coverage = CoverageClass.FULL
                outcomes = ALL_OUTCOMES
            else:
                coverage = CoverageClass.SINGLE
                outcomes = (self.select_single(signal),)

            plans[idx] = MatchCoveragePlan(
                match_id=match.match_id,
                position=idx,
                coverage=coverage,
                outcomes=tuple(outcomes),
                probabilities=probs,
                odds=match,
                strategic_value=scores[idx],
                market_probabilities=normalize_odds(match),
            )
            logger.debug(
                "Match %s: %s %s (strategic value %.3f)",
                match.match_id, coverage.name, plans[idx].symbol, scores[idx],
            )

        logger.info(
            "Allocated %s system: %d halves, %d fulls, %d singles",
            self.profile.value, config.halves, config.fulls, config.singles,
        )
        return plans
