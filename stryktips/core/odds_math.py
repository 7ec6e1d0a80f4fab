"""Fundamental odds mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The pillars exposed are:

1. **Odds normalisation**: decimal odds → implied probabilities → de-vigged
   probabilities summing to exactly 1.
2. **Risk-profile adjustment**: skew a probability triple toward favourites
   (``safe``) or underdogs (``risky``) and renormalise.
3. **Uncertainty**: normalised Shannon entropy of a triple, the measure the
   coverage allocator uses to decide where multi-outcome coverage pays off.

Design decisions
----------------
* Vig removal is **proportional** (``implied / Σ implied``).  Stryktipset is a
  pari-mutuel pool, so bookmaker prices are only a probability source, not the
  market being bet; the favourite-longshot correction of the Shin method buys
  little here and proportional normalisation keeps the unit-sum invariant
  trivially exact.
* An overround ≤ 1.0 (free-money arbitrage across the three prices) is **not**
  an error.  Normalisation proceeds and :func:`is_arbitrage` lets the value
  layer surface the condition.
* Every transformation ends in :func:`renormalize` so the unit-sum invariant
  holds at each stage boundary despite floating-point drift.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final

from scipy.stats import entropy

from stryktips.core.domain import MatchOdds, Probabilities, RiskProfile

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Bias factor per risk profile.  Negative amplifies favourites, positive
#: amplifies longshots.  ``|factor| < 2`` keeps every bias term positive for
#: probabilities in [0, 1].
RISK_FACTORS: Final[dict[RiskProfile, float]] = {
    RiskProfile.SAFE: -0.7,
    RiskProfile.BALANCED: 0.0,
    RiskProfile.RISKY: 0.7,
}


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def implied_probabilities(odds: MatchOdds) -> Probabilities:
    """Raw implied probabilities ``1 / odds`` (vig-inclusive).

    Args:
        odds: Decimal odds, each strictly greater than 1.0.

    Returns:
        Implied probability triple.  The sum equals the overround and is
        typically 1.02–1.12 for 1X2 football markets.

    Raises:
        InvalidOddsError: If any price is ≤ 1.0 or not finite.
    """
    odds.validate()
    return Probabilities(1.0 / odds.home, 1.0 / odds.draw, 1.0 / odds.away)


def overround(odds: MatchOdds) -> float:
    """Sum of implied probabilities (the bookmaker margin plus one).

    Examples::

        overround(MatchOdds("m", 2.0, 3.0, 4.0)) → 1.0833
    """
    return implied_probabilities(odds).total


def is_arbitrage(odds: MatchOdds) -> bool:
    """True when the overround is ≤ 1.0, i.e. the three prices admit a risk-free book."""
    return overround(odds) <= 1.0


def renormalize(probs: Probabilities) -> Probabilities:
    """Scale a non-negative triple so it sums to 1.

    Raises:
        ValueError: If any entry is negative or not finite, or the triple sums
            to zero.  There is no meaningful distribution to recover then.
    """
    values = probs.as_tuple()
    if any(v < 0.0 or not math.isfinite(v) for v in values):
        raise ValueError(f"Cannot renormalize {probs!r}: entries must be finite and ≥ 0.")
    total = sum(values)
    if total <= 0.0:
        raise ValueError(f"Cannot renormalize {probs!r}: entries sum to zero.")
    return Probabilities(values[0] / total, values[1] / total, values[2] / total)


def normalize_odds(odds: MatchOdds) -> Probabilities:
    """De-vig decimal odds into a probability triple summing to 1.

    Algorithm::

        implied_i    = 1 / odds_i
        total        = Σ implied_i
        normalized_i = implied_i / total

    Args:
        odds: Decimal odds for home, draw and away.

    Returns:
        Normalised probabilities.  ``|Σ − 1| ≤ 1e-9`` for every valid input.

    Raises:
        InvalidOddsError: If any price is ≤ 1.0.  Rejected before any
            arithmetic takes place.

    Examples::

        normalize_odds(MatchOdds("m", 2.0, 3.0, 4.0))
        → Probabilities(home=0.4615, draw=0.3077, away=0.2308)
    """
    return renormalize(implied_probabilities(odds))


def ensure_normalized(probs: Probabilities, tol: float = 1e-9) -> Probabilities:
    """Return ``probs`` unchanged if it already sums to 1, else a renormalised copy."""
    if abs(probs.total - 1.0) <= tol:
        return probs
    return renormalize(probs)


# ---------------------------------------------------------------------------
# Risk-profile adjustment
# ---------------------------------------------------------------------------


def risk_factor(profile: RiskProfile | str) -> float:
    """Bias factor for a profile: safe −0.7, balanced 0.0, risky +0.7.

    Raises:
        UnknownRiskProfileError: For any other value.
    """
    return RISK_FACTORS[RiskProfile.parse(profile)]


def adjust_probability(prob: float, factor: float) -> float:
    """Skew a single probability by distance from a coin flip.

    ::

        bias     = 1 + factor · (0.5 − p)
        adjusted = clamp(p · bias, 0, 1)

    Near-even outcomes move least.  With ``factor < 0`` probabilities above
    0.5 grow and those below shrink (favourites amplified); ``factor > 0``
    does the reverse.
    """
    bias = 1.0 + factor * (0.5 - prob)
    return max(0.0, min(1.0, prob * bias))


def adjust_for_risk(probs: Probabilities, profile: RiskProfile | str) -> Probabilities:
    """Apply :func:`adjust_probability` to each outcome and renormalise.

    ``balanced`` is an exact no-op up to renormalisation drift.

    Examples::

        adjust_for_risk(Probabilities(0.6, 0.25, 0.15), "safe")
        → Probabilities(home≈0.668, draw≈0.215, away≈0.118)
    """
    factor = risk_factor(profile)
    adjusted = Probabilities(
        adjust_probability(probs.home, factor),
        adjust_probability(probs.draw, factor),
        adjust_probability(probs.away, factor),
    )
    return renormalize(adjusted)


# ---------------------------------------------------------------------------
# Uncertainty
# ---------------------------------------------------------------------------


def normalized_entropy(probs: Probabilities) -> float:
    """Shannon entropy divided by ``log2(3)``, in [0, 1].

    0 means one outcome is certain; 1 means all three are equally likely.
    Zero-probability outcomes contribute nothing (``0 · log 0 = 0``).
    """
    if probs.total <= 0.0:
        raise ValueError(f"Cannot compute entropy of an all-zero triple {probs!r}.")
    # base=3 is identical to entropy_bits / log2(3)
    value = float(entropy(probs.as_tuple(), base=3))
    return max(0.0, min(1.0, value))

