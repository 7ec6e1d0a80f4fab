"""
Tests for services/row_generator.py

Run with: pytest tests/test_row_generator.py -v
"""

import dataclasses

import numpy as np
import pytest

from stryktips.core.domain import GeneratedRow, Outcome
from stryktips.core.errors import InvalidOddsError, UnknownRiskProfileError
from stryktips.core.odds_math import normalize_odds
from stryktips.services.row_generator import (
    RowFilters,
    RowGenerator,
    RowStrategy,
    diversity_score,
)


class TestRowFilters:
    """Row constraints."""

    def test_draw_bounds(self, slate):
        row = (Outcome.DRAW,) * 3 + (Outcome.HOME,) * 10
        assert RowFilters(min_draws=3, max_draws=3).accepts(row, slate)
        assert not RowFilters(min_draws=4).accepts(row, slate)
        assert not RowFilters(max_draws=2).accepts(row, slate)

    def test_away_bounds(self, slate):
        row = (Outcome.AWAY,) * 2 + (Outcome.HOME,) * 11
        assert not RowFilters(min_away_wins=3).accepts(row, slate)
        assert not RowFilters(max_away_wins=1).accepts(row, slate)

    def test_favourites_need_both_settings(self, slate):
        row = (Outcome.HOME,) * 13
        # homes priced under 2.0: m1, m4, m6, m9, m11
        assert not RowFilters(max_favorites=4, max_odds_below=2.0).accepts(row, slate)
        assert RowFilters(max_favorites=5, max_odds_below=2.0).accepts(row, slate)
        assert RowFilters(max_favorites=0).accepts(row, slate)


class TestRowGenerator:
    """Independent row generation."""

    @pytest.mark.parametrize("strategy", list(RowStrategy))
    def test_unique_rows(self, slate, strategy):
        generator = RowGenerator(slate, strategy=strategy, rng=np.random.default_rng(1))
        rows = generator.generate_rows(20)
        assert 0 < len(rows) <= 20
        assert len({r.outcomes for r in rows}) == len(rows)
        assert [r.row_id for r in rows] == [f"row_{i}" for i in range(len(rows))]
        for row in rows:
            assert len(row.outcomes) == 13

    def test_weighted_rows_fill_request(self, slate):
        rows = RowGenerator(slate, rng=np.random.default_rng(2)).generate_rows(30)
        assert len(rows) == 30

    def test_expected_correct_uses_base_probabilities(self, slate):
        generator = RowGenerator(slate, profile="risky", rng=np.random.default_rng(4))
        base = [normalize_odds(m) for m in slate]
        row = generator.generate_row("r")
        assert row.expected_correct == pytest.approx(
            sum(p.get(o) for p, o in zip(base, row.outcomes))
        )

    def test_ev_based_leans_on_value(self, slate):
        """EV rows mostly repeat the same picks; weighted rows spread out."""
        ev = RowGenerator(slate, strategy="ev-based", rng=np.random.default_rng(5)).generate_rows(10)
        weighted = RowGenerator(slate, rng=np.random.default_rng(5)).generate_rows(10)
        assert diversity_score(ev) < diversity_score(weighted)

    def test_filters_respected(self, slate):
        filters = RowFilters(min_draws=2, max_draws=4, max_away_wins=3)
        rows = RowGenerator(slate, filters=filters, rng=np.random.default_rng(6)).generate_rows(15)
        assert rows
        for row in rows:
            assert filters.accepts(row.outcomes, slate)

    def test_personal_biases(self, slate):
        filters = RowFilters(personal_biases={"m1": Outcome.AWAY, "m13": Outcome.DRAW})
        rows = RowGenerator(slate, filters=filters, rng=np.random.default_rng(7)).generate_rows(10)
        for row in rows:
            assert row.outcomes[0] is Outcome.AWAY
            assert row.outcomes[12] is Outcome.DRAW

    def test_impossible_filters_give_up(self, slate):
        filters = RowFilters(min_draws=5, max_draws=4)
        rows = RowGenerator(slate, filters=filters, rng=np.random.default_rng(8)).generate_rows(5)
        assert rows == []

    def test_rejects_bad_input(self, slate):
        with pytest.raises(ValueError):
            RowGenerator(slate).generate_rows(0)
        with pytest.raises(UnknownRiskProfileError):
            RowGenerator(slate, profile="wild")
        with pytest.raises(ValueError):
            RowGenerator(slate, strategy="lucky-dip")

    def test_rejects_bad_odds(self, slate):
        slate[0] = dataclasses.replace(slate[0], home=1.0)
        with pytest.raises(InvalidOddsError):
            RowGenerator(slate)


class TestDiversity:
    """Pairwise Hamming diversity."""

    def _row(self, symbols):
        return GeneratedRow("r", tuple(Outcome.parse(c) for c in symbols), 0.0, 0.0)

    def test_single_row(self):
        assert diversity_score([self._row("1X2")]) == 1.0

    def test_identical_rows(self):
        assert diversity_score([self._row("1X2"), self._row("1X2")]) == 0.0

    def test_mean_pairwise(self):
        rows = [self._row("111"), self._row("X11"), self._row("XX1")]
        # distances 1, 2, 1 over 3 pairs of length 3
        assert diversity_score(rows) == pytest.approx(4 / 9)
