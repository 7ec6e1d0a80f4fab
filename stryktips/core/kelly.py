"""Kelly criterion sizing: the single source of truth for value-bet math.

All functions here are **pure**: no I/O, no logging.
Import from this module; never reimplement Kelly locally in services.

The functions cover the distinct steps of value analysis:

1. :func:`expected_edge`: expected profit per unit staked.
2. :func:`kelly_fraction`: full-Kelly bankroll fraction for a positive edge.
3. :func:`recommended_stake`: Kelly stake in currency with a hard ruin cap.
4. :func:`bet_confidence`: heuristic confidence in a value bet.
5. :func:`blend_with_sentiment`: mix model probabilities with an external
   market-sentiment triple before pricing.
6. :func:`value_score`: best edge of a match squashed into [0, 1] for the
   coverage allocator.
7. :func:`best_value_outcome`: the outcome with the best edge, robust to
   de-vig ties.

Design decisions
----------------
* **Full Kelly with a 25 % cap** rather than fractional Kelly.  Pool coupons
  are not priced by the bookmaker whose odds we read, so the stake
  recommendation is advisory; the cap is the only ruin protection and it is
  applied to the currency amount, never silently to the reported fraction.
* A non-positive edge always yields a Kelly fraction of exactly 0.0, never
  a negative "lay" fraction.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from typing import Final

from stryktips.core.domain import ALL_OUTCOMES, MatchOdds, Outcome, Probabilities
from stryktips.core.odds_math import renormalize

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Edges closer than this count as tied.  Proportional de-vigging makes all
#: three edges equal up to float rounding.
EDGE_TOLERANCE: Final[float] = 1e-9

#: Hard cap on any single stake as a fraction of bankroll.
MAX_STAKE_FRACTION: Final[float] = 0.25

#: Weight given to the external sentiment triple when blending.  The model
#: (odds-derived) probability keeps the remaining 70 %.
DEFAULT_SENTIMENT_WEIGHT: Final[float] = 0.3

#: Confidence starts here before bonuses.
_BASE_CONFIDENCE: Final[float] = 0.5

#: Bonus for probabilities outside [0.2, 0.6] (clear favourite or clear longshot).
_EXTREMITY_BONUS: Final[float] = 0.2
_EXTREMITY_HIGH: Final[float] = 0.6
_EXTREMITY_LOW: Final[float] = 0.2

#: Model/market discrepancy bonus: ``min(2 · |p − 1/odds|, 0.3)``.
_DISCREPANCY_SCALE: Final[float] = 2.0
_DISCREPANCY_CAP: Final[float] = 0.3

#: Edge window mapped linearly onto [0, 1] by :func:`value_score`.
#: An edge of −20 % scores 0, +20 % scores 1.
_VALUE_EDGE_FLOOR: Final[float] = -0.2
_VALUE_EDGE_SPAN: Final[float] = 0.4


# ---------------------------------------------------------------------------
# Edge and Kelly
# ---------------------------------------------------------------------------


def _check_inputs(probability: float, decimal_odds: float) -> None:
    if not (0.0 <= probability <= 1.0):
        raise ValueError(
            f"probability must be in [0, 1], got {probability!r}. "
            "Check upstream normalisation."
        )
    if decimal_odds <= 1.0:
        raise ValueError(
            f"decimal_odds must be > 1.0 (no profit is possible otherwise), got {decimal_odds!r}."
        )


def expected_edge(probability: float, decimal_odds: float) -> float:
    """Expected profit per unit staked: ``p · odds − 1``.

    Examples::

        expected_edge(0.60, 1.5) → −0.10
        expected_edge(0.55, 2.0) → +0.10
    """
    _check_inputs(probability, decimal_odds)
    return probability * decimal_odds - 1.0


def kelly_fraction(probability: float, decimal_odds: float) -> float:
    """Full-Kelly fraction of bankroll for a win/loss bet.

    The Kelly criterion maximises expected log-wealth.  With profit per unit
    ``b = odds − 1`` the closed form is::

        f*  =  (p · b − q) / b  =  (p · odds − 1) / (odds − 1)  =  edge / b

    Args:
        probability: Estimated probability the outcome occurs, in [0, 1].
        decimal_odds: Decimal odds for the outcome, > 1.0.

    Returns:
        ``f*`` when the edge is positive, otherwise exactly 0.0.  The value
        is uncapped; the 25 % ruin cap applies to the stake amount in
        :func:`recommended_stake`.

    Raises:
        ValueError: If the probability is outside [0, 1] or odds ≤ 1.0.

    Examples::

        kelly_fraction(0.55, 2.0) → 0.10
        kelly_fraction(0.45, 2.0) → 0.0

    References:
        Kelly, J. L. (1956). A New Interpretation of Information Rate.
        *Bell System Technical Journal*, 35(4), 917–926.
    """
    edge = expected_edge(probability, decimal_odds)
    if edge <= 0.0:
        return 0.0
    return edge / (decimal_odds - 1.0)


def recommended_stake(
    probability: float,
    decimal_odds: float,
    bankroll: float,
    *,
    max_fraction: float = MAX_STAKE_FRACTION,
) -> float:
    """Kelly stake in currency, capped at ``max_fraction · bankroll``.

    ::

        stake = min(f* · bankroll, 0.25 · bankroll)

    Raises:
        ValueError: If ``bankroll`` is negative.

    Examples::

        recommended_stake(0.55, 2.0, 1000.0) → 100.0
        recommended_stake(0.90, 2.0, 1000.0) → 250.0   (capped, full Kelly is 800)
    """
    if bankroll < 0.0:
        raise ValueError(f"bankroll must be ≥ 0, got {bankroll!r}.")
    fraction = kelly_fraction(probability, decimal_odds)
    return min(fraction * bankroll, max_fraction * bankroll)


# ---------------------------------------------------------------------------
# Confidence and blending
# ---------------------------------------------------------------------------


def bet_confidence(probability: float, decimal_odds: float) -> float:
    """Heuristic confidence in a value bet, in [0, 1].

    ::

        confidence = 0.5
                   + 0.2                         if p > 0.6 or p < 0.2
                   + min(2 · |p − 1/odds|, 0.3)

    The first bonus rewards clear favourites and clear longshots, where the
    probability estimate is least ambiguous.  The second rewards a large gap
    between the model and the raw bookmaker price.
    """
    _check_inputs(probability, decimal_odds)
    confidence = _BASE_CONFIDENCE
    if probability > _EXTREMITY_HIGH or probability < _EXTREMITY_LOW:
        confidence += _EXTREMITY_BONUS
    discrepancy = abs(probability - 1.0 / decimal_odds)
    confidence += min(discrepancy * _DISCREPANCY_SCALE, _DISCREPANCY_CAP)
    return max(0.0, min(1.0, confidence))


def blend_with_sentiment(
    model: Probabilities,
    sentiment: Probabilities | None,
    *,
    weight: float = DEFAULT_SENTIMENT_WEIGHT,
) -> Probabilities:
    """Mix model probabilities with an external sentiment triple.

    ``sentiment`` is consumed opaquely: any [0, 1] triple is accepted and
    renormalised first, so raw public-share percentages divided by 100 work
    as well as a calibrated distribution.

    Args:
        model: Odds-derived probabilities.
        sentiment: External triple, or ``None`` to return ``model`` unchanged.
        weight: Share given to ``sentiment``, in [0, 1].

    Returns:
        ``(1 − w) · model + w · sentiment``, renormalised.
    """
    if sentiment is None or weight == 0.0:
        return model
    if not (0.0 <= weight <= 1.0):
        raise ValueError(f"weight must be in [0, 1], got {weight!r}.")
    market = renormalize(sentiment)
    return renormalize(
        Probabilities(
            (1.0 - weight) * model.home + weight * market.home,
            (1.0 - weight) * model.draw + weight * market.draw,
            (1.0 - weight) * model.away + weight * market.away,
        )
    )


def best_edge(probs: Probabilities, odds: MatchOdds) -> float:
    """Largest ``p · odds − 1`` over the three outcomes (may be negative)."""
    return max(expected_edge(probs.get(o), odds.price(o)) for o in ALL_OUTCOMES)


def best_value_outcome(probs: Probabilities, odds: MatchOdds) -> Outcome:
    """Outcome with the largest edge.

    Edges within :data:`EDGE_TOLERANCE` of the best are tied; the most
    probable tied outcome wins, then coupon order.
    """
    edges = {o: expected_edge(probs.get(o), odds.price(o)) for o in ALL_OUTCOMES}
    top = max(edges.values())
    tied = [
        o for o in ALL_OUTCOMES
        if math.isclose(edges[o], top, rel_tol=0.0, abs_tol=EDGE_TOLERANCE)
    ]
    return max(tied, key=lambda o: (probs.get(o), -ALL_OUTCOMES.index(o)))


def value_score(probs: Probabilities, odds: MatchOdds) -> float:
    """Best edge squashed linearly onto [0, 1].

    ::

        value = clamp((best_edge + 0.2) / 0.4, 0, 1)

    With proportionally de-vigged probabilities every edge equals
    ``1/overround − 1``, so the score mostly reflects bookmaker margin unless
    the probabilities come from a different source than the odds.
    """
    raw = (best_edge(probs, odds) - _VALUE_EDGE_FLOOR) / _VALUE_EDGE_SPAN
    return max(0.0, min(1.0, raw))
