"""
Tests for core/system_config.py

Run with: pytest tests/test_system_config.py -v
"""

import dataclasses

import pytest

from stryktips.core.domain import CoverageClass
from stryktips.core.errors import ConfigurationMismatchError, SystemTooLargeError
from stryktips.core.system_config import (
    PRESETS,
    SystemConfiguration,
    available_sizes,
    closest_system,
    enumerate_systems,
    row_count,
)


class TestRowArithmetic:
    """Row counts and cost."""

    def test_system_96(self):
        """5 halves + 1 full + 7 singles expands to 96 rows."""
        cfg = SystemConfiguration(halves=5, fulls=1, singles=7)
        assert cfg.total_rows == 96
        assert cfg.cost == pytest.approx(96.0)

    def test_system_64(self):
        """6 halves + 7 singles expands to 64 rows."""
        assert SystemConfiguration(halves=6, fulls=0, singles=7).total_rows == 64

    @pytest.mark.parametrize("h,f", [(0, 0), (1, 0), (0, 1), (3, 2), (7, 4), (10, 3)])
    def test_row_count_formula(self, h, f):
        cfg = SystemConfiguration(halves=h, fulls=f, singles=13 - h - f)
        assert cfg.total_rows == 2 ** h * 3 ** f == row_count(h, f)

    def test_cost_per_row(self):
        cfg = SystemConfiguration(halves=2, fulls=0, singles=11, cost_per_row=0.5)
        assert cfg.cost == pytest.approx(2.0)

    def test_count_for(self):
        cfg = SystemConfiguration.system_48()
        assert cfg.count_for(CoverageClass.HALF) == 4
        assert cfg.count_for(CoverageClass.FULL) == 1
        assert cfg.count_for(CoverageClass.SINGLE) == 8


class TestValidation:
    """Shape validation on construction."""

    def test_wrong_total(self):
        with pytest.raises(ConfigurationMismatchError):
            SystemConfiguration(halves=5, fulls=1, singles=6)

    def test_negative_count(self):
        with pytest.raises(ConfigurationMismatchError):
            SystemConfiguration(halves=-1, fulls=2, singles=12)

    def test_non_integer_count(self):
        with pytest.raises(ConfigurationMismatchError):
            SystemConfiguration(halves=2.5, fulls=0, singles=10.5)

    def test_other_slate_size(self):
        cfg = SystemConfiguration(halves=2, fulls=1, singles=5, slate_size=8)
        assert cfg.total_rows == 12

    def test_replace_revalidates(self):
        """dataclasses.replace goes through the same checks."""
        with pytest.raises(ConfigurationMismatchError):
            dataclasses.replace(SystemConfiguration.system_96(), singles=8)

    def test_ceiling(self):
        big = SystemConfiguration(halves=6, fulls=6, singles=1)
        with pytest.raises(SystemTooLargeError) as excinfo:
            big.check_ceiling(2000)
        assert excinfo.value.total_rows == 64 * 729
        assert excinfo.value.max_rows == 2000
        SystemConfiguration.system_96().check_ceiling(96)


class TestPresets:
    """Named systems."""

    def test_preset_sizes(self):
        sizes = {name: cfg.total_rows for name, cfg in PRESETS.items()}
        assert sizes == {"system-96": 96, "system-64": 64, "system-48": 48, "system-32": 32}

    def test_from_preset(self):
        assert SystemConfiguration.from_preset("system-32") == SystemConfiguration.system_32()

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationMismatchError):
            SystemConfiguration.from_preset("system-100")

    def test_swedish_description(self):
        assert SystemConfiguration.system_96().description == (
            "5 halvgarderingar + 1 helgardering + 7 spikar"
        )
        one_each = SystemConfiguration(halves=1, fulls=1, singles=1, slate_size=3)
        assert one_each.description == "1 halvgardering + 1 helgardering + 1 spik"

    def test_to_dict(self):
        out = SystemConfiguration.system_64().to_dict()
        assert out["total_rows"] == 64
        assert out["distribution"] == {"halves": 6, "fulls": 0, "singles": 7}


class TestCatalog:
    """System enumeration and lookup."""

    def test_sorted_unique_and_bounded(self):
        sizes = available_sizes(1000)
        assert sizes == sorted(set(sizes))
        assert sizes[0] == 1
        assert max(sizes) <= 1000
        for preset in (32, 48, 64, 96):
            assert preset in sizes

    def test_every_shape_is_valid(self):
        for cfg in enumerate_systems(500):
            assert cfg.halves + cfg.fulls + cfg.singles == 13
            assert cfg.halves <= 10 and cfg.fulls <= 6

    def test_closest(self):
        assert closest_system(100).total_rows == 96
        assert closest_system(60).total_rows == 64

    def test_closest_tie_prefers_smaller(self):
        """7 is equally far from 6 and 8; the cheaper system wins."""
        assert closest_system(7).total_rows == 6
