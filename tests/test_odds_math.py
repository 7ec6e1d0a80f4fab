"""
Tests for core/odds_math.py

Run with: pytest tests/test_odds_math.py -v
"""

import math

import pytest

from stryktips.core.domain import MatchOdds, Probabilities, RiskProfile
from stryktips.core.errors import InvalidOddsError, UnknownRiskProfileError
from stryktips.core.odds_math import (
    adjust_for_risk,
    adjust_probability,
    ensure_normalized,
    implied_probabilities,
    is_arbitrage,
    normalize_odds,
    normalized_entropy,
    overround,
    renormalize,
    risk_factor,
)


class TestNormalizeOdds:
    """De-vigging decimal odds."""

    def test_textbook_example(self):
        """2.0 / 3.0 / 4.0 normalises to 0.4615 / 0.3077 / 0.2308."""
        odds = MatchOdds("m1", 2.0, 3.0, 4.0)
        implied = implied_probabilities(odds)
        assert implied.as_tuple() == pytest.approx((0.5, 1 / 3, 0.25))
        assert overround(odds) == pytest.approx(1.0833, abs=1e-4)

        probs = normalize_odds(odds)
        assert probs.home == pytest.approx(0.4615, abs=1e-4)
        assert probs.draw == pytest.approx(0.3077, abs=1e-4)
        assert probs.away == pytest.approx(0.2308, abs=1e-4)

    @pytest.mark.parametrize(
        "prices",
        [(1.01, 15.0, 40.0), (2.5, 3.2, 2.9), (1.85, 3.4, 4.5), (7.0, 5.5, 1.3), (1.9, 1.9, 1.9)],
    )
    def test_sums_to_one(self, prices):
        """Normalised probabilities sum to 1 within 1e-9."""
        probs = normalize_odds(MatchOdds("m", *prices))
        assert abs(probs.total - 1.0) <= 1e-9
        probs.validate()

    @pytest.mark.parametrize("bad", [1.0, 0.5, -2.0, math.inf, math.nan])
    def test_rejects_invalid_odds(self, bad):
        """Odds ≤ 1.0 or non-finite are rejected before any arithmetic."""
        with pytest.raises(InvalidOddsError):
            normalize_odds(MatchOdds("m", 2.0, bad, 3.0))

    def test_invalid_odds_is_value_error(self):
        """Callers catching ValueError still see engine errors."""
        with pytest.raises(ValueError):
            normalize_odds(MatchOdds("m", 1.0, 3.0, 3.0))

    def test_arbitrage_is_not_an_error(self):
        """Overround below 1 normalises and is flagged."""
        odds = MatchOdds("m", 3.5, 3.5, 3.5)
        assert is_arbitrage(odds)
        assert normalize_odds(odds).as_tuple() == pytest.approx((1 / 3, 1 / 3, 1 / 3))

    def test_typical_market_is_not_arbitrage(self):
        assert not is_arbitrage(MatchOdds("m", 2.0, 3.0, 4.0))


class TestRenormalize:
    """Defensive renormalisation."""

    def test_scales_to_unit_sum(self):
        probs = renormalize(Probabilities(2.0, 1.0, 1.0))
        assert probs.as_tuple() == pytest.approx((0.5, 0.25, 0.25))

    def test_rejects_zero_sum(self):
        with pytest.raises(ValueError):
            renormalize(Probabilities(0.0, 0.0, 0.0))

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            renormalize(Probabilities(0.5, -0.1, 0.6))

    def test_ensure_normalized_passes_through(self):
        """An already-normalised triple is returned as-is."""
        probs = Probabilities(0.5, 0.3, 0.2)
        assert ensure_normalized(probs) is probs

    def test_ensure_normalized_fixes_drift(self):
        probs = ensure_normalized(Probabilities(0.5, 0.3, 0.3))
        assert probs.total == pytest.approx(1.0)


class TestRiskAdjustment:
    """Risk-profile skewing."""

    def test_factors(self):
        assert risk_factor("safe") == -0.7
        assert risk_factor(RiskProfile.BALANCED) == 0.0
        assert risk_factor("RISKY") == 0.7

    def test_unknown_profile(self):
        with pytest.raises(UnknownRiskProfileError):
            risk_factor("reckless")

    def test_balanced_is_identity(self):
        """Balanced leaves normalised probabilities unchanged."""
        probs = Probabilities(0.6, 0.25, 0.15)
        assert adjust_for_risk(probs, "balanced").as_tuple() == pytest.approx(probs.as_tuple())

    def test_safe_amplifies_favourite(self):
        """Safe moves mass onto the favourite."""
        adjusted = adjust_for_risk(Probabilities(0.6, 0.25, 0.15), "safe")
        assert adjusted.home == pytest.approx(0.6677, abs=1e-3)
        assert adjusted.draw == pytest.approx(0.2145, abs=1e-3)
        assert adjusted.away == pytest.approx(0.1178, abs=1e-3)
        assert adjusted.total == pytest.approx(1.0, abs=1e-9)

    def test_risky_amplifies_longshots(self):
        """Risky moves mass away from the favourite."""
        probs = Probabilities(0.6, 0.25, 0.15)
        adjusted = adjust_for_risk(probs, "risky")
        assert adjusted.home < probs.home
        assert adjusted.away > probs.away
        assert adjusted.total == pytest.approx(1.0, abs=1e-9)

    def test_coin_flip_untouched(self):
        """A probability of exactly 0.5 has zero bias."""
        assert adjust_probability(0.5, 0.7) == pytest.approx(0.5)
        assert adjust_probability(0.5, -0.7) == pytest.approx(0.5)

    def test_clamped_to_unit_interval(self):
        assert 0.0 <= adjust_probability(1.0, -0.7) <= 1.0
        assert 0.0 <= adjust_probability(0.0, 0.7) <= 1.0


class TestEntropy:
    """Normalised Shannon entropy."""

    def test_uniform_is_one(self):
        assert normalized_entropy(Probabilities(1 / 3, 1 / 3, 1 / 3)) == pytest.approx(1.0)

    def test_certain_is_zero(self):
        assert normalized_entropy(Probabilities(1.0, 0.0, 0.0)) == pytest.approx(0.0)

    def test_favourite_is_lower_than_open_match(self):
        open_match = normalized_entropy(Probabilities(0.36, 0.30, 0.34))
        favourite = normalized_entropy(Probabilities(0.75, 0.15, 0.10))
        assert favourite < open_match
