"""
Tests for services/coverage.py

Run with: pytest tests/test_coverage.py -v
"""

import dataclasses

import numpy as np
import pytest

from stryktips.core.domain import (
    ALL_OUTCOMES,
    CoverageClass,
    MatchOdds,
    Outcome,
    Probabilities,
    RiskProfile,
)
from stryktips.core.errors import ConfigurationMismatchError
from stryktips.core.odds_math import adjust_for_risk, normalize_odds
from stryktips.core.signal_interface import IntelligenceSignal
from stryktips.core.system_config import SystemConfiguration
from stryktips.services.coverage import (
    ChaosParameters,
    CoverageAllocator,
    MatchCoveragePlan,
    _partner_half,
    strategic_value,
)
from stryktips.services.signals import OddsSignalProvider, StaticSignalProvider


def _probs(slate, profile):
    return [adjust_for_risk(normalize_odds(m), profile) for m in slate]


class TestMatchCoveragePlan:
    """Plan value object."""

    def test_cardinality_enforced(self):
        match = MatchOdds("m1", 2.0, 3.0, 4.0)
        with pytest.raises(ValueError):
            MatchCoveragePlan("m1", 0, CoverageClass.HALF, (Outcome.HOME,), normalize_odds(match), match)

    def test_duplicates_rejected(self):
        match = MatchOdds("m1", 2.0, 3.0, 4.0)
        with pytest.raises(ValueError):
            MatchCoveragePlan(
                "m1", 0, CoverageClass.HALF, (Outcome.HOME, Outcome.HOME), normalize_odds(match), match
            )

    def test_symbol_and_covered_probability(self):
        match = MatchOdds("m1", 2.0, 3.0, 4.0, home_team="A", away_team="B")
        plan = MatchCoveragePlan(
            "m1", 0, CoverageClass.HALF, (Outcome.HOME, Outcome.AWAY),
            Probabilities(0.5, 0.3, 0.2), match,
        )
        assert plan.symbol == "12"
        assert plan.covered_probability == pytest.approx(0.7)
        assert plan.covers(Outcome.AWAY) and not plan.covers(Outcome.DRAW)
        out = plan.to_dict()
        assert out["coverage"] == "half"
        assert out["system_outcome"] == "12"
        assert out["home_team"] == "A"


class TestHelpers:
    """Strategic value and half partners."""

    def test_strategic_value_blend(self):
        match = MatchOdds("m1", 3.0, 3.0, 3.0)
        probs = normalize_odds(match)
        # uniform: entropy 1, edge 0 -> value 0.5
        assert strategic_value(probs, match) == pytest.approx(0.6 + 0.4 * 0.5)

    def test_open_match_beats_banker(self):
        banker = MatchOdds("b", 1.2, 7.0, 13.0)
        open_match = MatchOdds("o", 2.6, 3.1, 2.7)
        assert strategic_value(normalize_odds(open_match), open_match) > strategic_value(
            normalize_odds(banker), banker
        )

    def test_partner_is_likelier_other(self):
        assert _partner_half(Outcome.HOME, Probabilities(0.5, 0.3, 0.2)) == (Outcome.HOME, Outcome.DRAW)
        assert _partner_half(Outcome.AWAY, Probabilities(0.5, 0.3, 0.2)) == (Outcome.HOME, Outcome.AWAY)

    def test_partner_tie_goes_to_later(self):
        assert _partner_half(Outcome.HOME, Probabilities(0.5, 0.25, 0.25)) == (Outcome.HOME, Outcome.AWAY)


class TestRanking:
    """Profile-dependent ranking perturbation."""

    SCORES = [0.1, 0.9, 0.5, 0.3, 0.8, 0.2, 0.7, 0.6, 0.4, 0.05, 0.95, 0.15, 0.35]

    def test_safe_is_sorted(self):
        allocator = CoverageAllocator("safe", rng=np.random.default_rng(0))
        order = allocator.rank(self.SCORES)
        assert [self.SCORES[i] for i in order] == sorted(self.SCORES, reverse=True)

    def test_balanced_without_shuffle(self):
        chaos = ChaosParameters(balanced_shuffle_prob=0.0)
        allocator = CoverageAllocator("balanced", rng=np.random.default_rng(0), chaos=chaos)
        order = allocator.rank(self.SCORES)
        assert [self.SCORES[i] for i in order] == sorted(self.SCORES, reverse=True)

    def test_balanced_only_touches_middle_window(self):
        chaos = ChaosParameters(balanced_shuffle_prob=1.0)
        sorted_order = sorted(range(13), key=lambda i: self.SCORES[i], reverse=True)
        for seed in range(20):
            allocator = CoverageAllocator("balanced", rng=np.random.default_rng(seed), chaos=chaos)
            order = allocator.rank(self.SCORES)
            assert order[:4] == sorted_order[:4]
            assert order[9:] == sorted_order[9:]
            assert sorted(order[4:9]) == sorted(sorted_order[4:9])

    @pytest.mark.parametrize("seed", range(10))
    def test_risky_is_permutation(self, seed):
        allocator = CoverageAllocator("risky", rng=np.random.default_rng(seed))
        assert sorted(allocator.rank(self.SCORES)) == list(range(13))


class TestOutcomeSelection:
    """Half and single picks."""

    def test_safe_single_is_safe_pick(self):
        signal = IntelligenceSignal("m1", Outcome.DRAW, 0.1, value_outcome=Outcome.AWAY)
        assert CoverageAllocator("safe").select_single(signal) is Outcome.DRAW

    def test_balanced_single_uses_confidence(self):
        allocator = CoverageAllocator("balanced")
        confident = IntelligenceSignal("m1", Outcome.HOME, 0.8, value_outcome=Outcome.AWAY)
        doubtful = IntelligenceSignal("m1", Outcome.HOME, 0.5, value_outcome=Outcome.AWAY)
        assert allocator.select_single(confident) is Outcome.HOME
        assert allocator.select_single(doubtful) is Outcome.AWAY

    def test_balanced_half_uses_confidence(self):
        allocator = CoverageAllocator("balanced")
        probs = Probabilities(0.45, 0.30, 0.25)
        confident = IntelligenceSignal("m1", Outcome.HOME, 0.75, value_outcome=Outcome.AWAY)
        doubtful = IntelligenceSignal("m1", Outcome.HOME, 0.6, value_outcome=Outcome.AWAY)
        assert allocator.select_half(confident, probs) == (Outcome.HOME, Outcome.DRAW)
        assert allocator.select_half(doubtful, probs) == (Outcome.HOME, Outcome.AWAY)

    @pytest.mark.parametrize("seed", range(25))
    def test_risky_picks_are_valid(self, seed):
        allocator = CoverageAllocator("risky", rng=np.random.default_rng(seed))
        signal = IntelligenceSignal(
            "m1", Outcome.HOME, 0.5, value_outcome=Outcome.DRAW,
            contrarian_outcome=Outcome.AWAY, contrarian_score=0.9,
        )
        half = allocator.select_half(signal, Probabilities(0.5, 0.3, 0.2))
        assert len(half) == 2 and len(set(half)) == 2
        assert list(half) == [o for o in ALL_OUTCOMES if o in half]
        assert allocator.select_single(signal) in ALL_OUTCOMES


class TestAllocate:
    """Full slate allocation."""

    @pytest.mark.parametrize("profile", ["safe", "balanced", "risky"])
    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_coverage_consistency(self, slate, profile, seed):
        """Counts match the configuration and every plan has the right cardinality."""
        config = SystemConfiguration.system_96()
        allocator = CoverageAllocator(profile, rng=np.random.default_rng(seed))
        plans = allocator.allocate(slate, _probs(slate, profile), config)

        assert [p.match_id for p in plans] == [m.match_id for m in slate]
        assert [p.position for p in plans] == list(range(13))
        counts = {c: sum(1 for p in plans if p.coverage is c) for c in CoverageClass}
        assert counts == {CoverageClass.HALF: 5, CoverageClass.FULL: 1, CoverageClass.SINGLE: 7}
        for plan in plans:
            assert len(plan.outcomes) == plan.coverage.cardinality
            assert len(set(plan.outcomes)) == len(plan.outcomes)

    def test_safe_follows_strategic_value(self, slate):
        probs = _probs(slate, RiskProfile.SAFE)
        plans = CoverageAllocator("safe").allocate(slate, probs, SystemConfiguration.system_96())

        scores = [strategic_value(p, m) for m, p in zip(slate, probs)]
        ranked = sorted(range(13), key=lambda i: scores[i], reverse=True)
        assert {i for i, p in enumerate(plans) if p.coverage is CoverageClass.HALF} == set(ranked[:5])
        assert plans[ranked[5]].coverage is CoverageClass.FULL
        for i in ranked[6:]:
            assert plans[i].outcomes == (probs[i].most_likely(),)

    def test_safe_is_deterministic(self, slate):
        probs = _probs(slate, "safe")
        config = SystemConfiguration.system_64()
        a = CoverageAllocator("safe", rng=np.random.default_rng(1)).allocate(slate, probs, config)
        b = CoverageAllocator("safe", rng=np.random.default_rng(99)).allocate(slate, probs, config)
        assert [p.outcomes for p in a] == [p.outcomes for p in b]

    @pytest.mark.parametrize("profile", ["balanced", "risky"])
    def test_seed_reproducible(self, slate, profile):
        probs = _probs(slate, profile)
        config = SystemConfiguration.system_96()
        a = CoverageAllocator(profile, rng=np.random.default_rng(5)).allocate(slate, probs, config)
        b = CoverageAllocator(profile, rng=np.random.default_rng(5)).allocate(slate, probs, config)
        assert [(p.coverage, p.outcomes) for p in a] == [(p.coverage, p.outcomes) for p in b]

    def test_injected_signals_drive_singles(self, slate):
        signals = {
            m.match_id: IntelligenceSignal(m.match_id, Outcome.AWAY, 0.9, source="tipster")
            for m in slate
        }
        allocator = CoverageAllocator("safe", signal_provider=StaticSignalProvider(signals))
        plans = allocator.allocate(slate, _probs(slate, "safe"), SystemConfiguration.system_32())
        for plan in plans:
            assert Outcome.AWAY in plan.outcomes

    def test_rejects_non_provider(self):
        with pytest.raises(TypeError):
            CoverageAllocator("safe", signal_provider=object())

    def test_configuration_mismatch(self, slate):
        config = SystemConfiguration(halves=2, fulls=0, singles=3, slate_size=5)
        with pytest.raises(ConfigurationMismatchError):
            CoverageAllocator("safe").allocate(slate, _probs(slate, "safe"), config)

    def test_length_mismatch(self, slate):
        with pytest.raises(ValueError):
            CoverageAllocator("safe").allocate(slate, [], SystemConfiguration.system_96())

    def test_balanced_singles_take_market_favourite(self, slate):
        """De-vigged edges tie, so unconfident singles still back the favourite."""
        chaos = ChaosParameters(balanced_shuffle_prob=0.0)
        allocator = CoverageAllocator("balanced", rng=np.random.default_rng(0), chaos=chaos)
        probs = _probs(slate, "balanced")
        plans = allocator.allocate(slate, probs, SystemConfiguration.system_96())
        for plan, p in zip(plans, probs):
            if plan.coverage is CoverageClass.SINGLE:
                assert plan.outcomes == (p.most_likely(),)

    def test_plans_carry_market_probabilities(self, slate):
        probs = _probs(slate, "safe")
        plans = CoverageAllocator("safe").allocate(slate, probs, SystemConfiguration.system_32())
        for plan, match, p in zip(plans, slate, probs):
            assert plan.probabilities == p
            assert plan.market_probabilities == normalize_odds(match)
            assert plan.outcome_model == normalize_odds(match)


class TestChaosParameters:
    """Deterministic settings pin each risky branch."""

    def test_replace(self):
        chaos = dataclasses.replace(ChaosParameters(), risky_reverse_prob=0.0)
        assert chaos.risky_reverse_prob == 0.0
        assert chaos.balanced_swaps == 3

    @pytest.mark.parametrize("seed", range(5))
    def test_risky_reverse_without_noise(self, seed):
        chaos = ChaosParameters(
            risky_noise_span=0.0,
            risky_min_swap_share=0.0,
            risky_swap_share_span=0.0,
            risky_reverse_prob=1.0,
        )
        allocator = CoverageAllocator("risky", rng=np.random.default_rng(seed), chaos=chaos)
        order = allocator.rank(TestRanking.SCORES)
        assert [TestRanking.SCORES[i] for i in order] == sorted(TestRanking.SCORES)

    @pytest.mark.parametrize("seed", range(10))
    def test_risky_single_avoids_suggestions(self, seed):
        chaos = ChaosParameters(risky_uniform_prob=0.0, risky_avoid_prob=1.0)
        allocator = CoverageAllocator("risky", rng=np.random.default_rng(seed), chaos=chaos)
        signal = IntelligenceSignal("m1", Outcome.HOME, 0.5, value_outcome=Outcome.DRAW)
        assert allocator.select_single(signal) is Outcome.AWAY

    @pytest.mark.parametrize("seed", range(10))
    def test_risky_half_always_contrarian(self, seed):
        chaos = ChaosParameters(risky_contrarian_base=1.0)
        allocator = CoverageAllocator("risky", rng=np.random.default_rng(seed), chaos=chaos)
        signal = IntelligenceSignal(
            "m1", Outcome.HOME, 0.5, value_outcome=Outcome.HOME,
            contrarian_outcome=Outcome.AWAY, contrarian_score=0.0,
        )
        half = allocator.select_half(signal, Probabilities(0.6, 0.25, 0.15))
        assert Outcome.AWAY in half

    def test_balanced_single_on_devigged_favourite(self):
        match = MatchOdds("m8", 5.50, 4.00, 1.60)
        signal = OddsSignalProvider().signal_for(match, normalize_odds(match))
        assert CoverageAllocator("balanced").select_single(signal) is Outcome.AWAY
