"""
Kelly-criterion value analysis over a Stryktipset slate.

Finds outcomes whose probability estimate beats the bookmaker price and
sizes a stake for each with the capped Kelly rule from
``stryktips.core.kelly``.  The probability estimate defaults to the
de-vigged odds, optionally blended with the public share on each outcome
("Svenska Folket") and nudged toward the home side.

Usage::

    analyzer = ValueAnalyzer(bankroll=1000.0)
    report = analyzer.analyze_slate(matches)
    for bet in report.value_bets:
        print(bet.match_id, bet.outcome.value, bet.edge, bet.recommended_stake)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from stryktips.core.domain import ALL_OUTCOMES, MatchOdds, Outcome, Probabilities, ValueBet
from stryktips.core.kelly import (
    DEFAULT_SENTIMENT_WEIGHT,
    MAX_STAKE_FRACTION,
    best_value_outcome,
    bet_confidence,
    blend_with_sentiment,
    expected_edge,
    kelly_fraction,
    recommended_stake,
)
from stryktips.core.odds_math import is_arbitrage, normalize_odds, renormalize

logger = logging.getLogger(__name__)

# A match still gets a recommended outcome when its best edge is slightly
# negative; the coupon needs a pick for every match anyway.
RECOMMENDATION_TOLERANCE = -0.05


@dataclass
class ValueReport:
    """Slate-level result of :meth:`ValueAnalyzer.analyze_slate`."""

    value_bets: List[ValueBet] = field(default_factory=list)
    total_value: float = 0.0
    recommended_outcomes: Dict[str, Outcome] = field(default_factory=dict)
    arbitrage_matches: List[str] = field(default_factory=list)

    @property
    def has_value(self) -> bool:
        return bool(self.value_bets)

    def bets_for(self, match_id: str) -> List[ValueBet]:
        return [b for b in self.value_bets if b.match_id == match_id]

    def to_dict(self) -> Dict:
        return {
            "value_bets": [b.to_dict() for b in self.value_bets],
            "total_value": round(self.total_value, 4),
            "recommended_outcomes": {k: v.value for k, v in self.recommended_outcomes.items()},
            "arbitrage_matches": list(self.arbitrage_matches),
        }


class ValueAnalyzer:
    """
    Positive-edge finder with capped Kelly sizing.

    Args:
        bankroll: Currency amount stakes are sized against.
        sentiment_weight: Share given to public betting shares when a match
            carries them (0.3 → 70 % model, 30 % public).
        home_advantage: Probability mass moved onto the home outcome (half
            taken from draw, half from away) before renormalising.  0 leaves
            the estimate untouched.
        max_fraction: Ruin cap on any single stake as a fraction of bankroll.
    """

    def __init__(
        self,
        bankroll: float = 1000.0,
        sentiment_weight: float = DEFAULT_SENTIMENT_WEIGHT,
        home_advantage: float = 0.0,
        max_fraction: float = MAX_STAKE_FRACTION,
    ):
        if bankroll < 0:
            raise ValueError(f"bankroll must be ≥ 0, got {bankroll!r}.")
        if not (0.0 <= sentiment_weight <= 1.0):
            raise ValueError(f"sentiment_weight must be in [0, 1], got {sentiment_weight!r}.")
        self.bankroll = bankroll
        self.sentiment_weight = sentiment_weight
        self.home_advantage = home_advantage
        self.max_fraction = max_fraction

    def estimate_probabilities(
        self,
        match: MatchOdds,
        sentiment: Optional[Probabilities] = None,
    ) -> Probabilities:
        """
        Model probability for each outcome of ``match``.

        De-vigged odds, blended with ``sentiment`` (or the match's own public
        shares when ``sentiment`` is None), then shifted by the configured
        home advantage.
        """
        probs = normalize_odds(match)
        market = sentiment if sentiment is not None else match.public_shares
        probs = blend_with_sentiment(probs, market, weight=self.sentiment_weight)
        if self.home_advantage:
            shift = self.home_advantage
            probs = renormalize(
                Probabilities(
                    probs.home + shift,
                    max(0.0, probs.draw - shift / 2),
                    max(0.0, probs.away - shift / 2),
                )
            )
        return probs

    def analyze_match(
        self,
        match: MatchOdds,
        probabilities: Optional[Probabilities] = None,
        sentiment: Optional[Probabilities] = None,
    ) -> List[ValueBet]:
        """
        Positive-edge bets for one match.

        Args:
            match: Odds for the fixture.
            probabilities: Explicit estimate.  When given it is used as-is
                (after renormalisation) and ``sentiment`` is ignored.
            sentiment: External market-sentiment triple to blend in.

        Returns:
            One :class:`ValueBet` per outcome with edge > 0, in coupon order.
            An empty list is the normal result for an efficiently priced
            match.
        """
        match.validate()
        if probabilities is not None:
            probs = renormalize(probabilities)
        else:
            probs = self.estimate_probabilities(match, sentiment)

        bets: List[ValueBet] = []
        for outcome in ALL_OUTCOMES:
            p = probs.get(outcome)
            price = match.price(outcome)
            edge = expected_edge(p, price)
            if edge <= 0.0:
                continue
            bets.append(
                ValueBet(
                    match_id=match.match_id,
                    outcome=outcome,
                    edge=edge,
                    kelly_fraction=kelly_fraction(p, price),
                    confidence=bet_confidence(p, price),
                    recommended_stake=recommended_stake(
                        p, price, self.bankroll, max_fraction=self.max_fraction
                    ),
                )
            )
        return bets

    def analyze_slate(
        self,
        matches: Sequence[MatchOdds],
        probabilities: Optional[Sequence[Probabilities]] = None,
    ) -> ValueReport:
        """
        Run :meth:`analyze_match` over a slate and aggregate.

        Bets are sorted by descending edge.  ``recommended_outcomes`` maps each
        match to its best-edge outcome when that edge exceeds
        ``RECOMMENDATION_TOLERANCE``.  ``arbitrage_matches`` lists matches
        whose overround is ≤ 1.0.
        """
        if probabilities is not None and len(probabilities) != len(matches):
            raise ValueError(
                f"Got {len(matches)} matches but {len(probabilities)} probability triples."
            )

        report = ValueReport()
        for i, match in enumerate(matches):
            explicit = probabilities[i] if probabilities is not None else None
            bets = self.analyze_match(match, probabilities=explicit)
            report.value_bets.extend(bets)

            probs = renormalize(explicit) if explicit is not None else self.estimate_probabilities(match)
            best = best_value_outcome(probs, match)
            if expected_edge(probs.get(best), match.price(best)) > RECOMMENDATION_TOLERANCE:
                report.recommended_outcomes[match.match_id] = best

            if is_arbitrage(match):
                logger.warning("Arbitrage prices on match %s (%s)", match.match_id, match.as_tuple())
                report.arbitrage_matches.append(match.match_id)

        report.value_bets.sort(key=lambda b: b.edge, reverse=True)
        report.total_value = sum(b.edge for b in report.value_bets)
        logger.info(
            "Value analysis: %d bets across %d matches, total edge %.3f",
            len(report.value_bets), len(matches), report.total_value,
        )
        return report
