"""System configuration: coverage distribution, row arithmetic and presets.

This module is the **registry** for everything that describes the *shape*
of a Stryktipset system: how many matches carry half coverage (two
outcomes), full coverage (all three) and singles (one outcome), and the
row count and cost that shape implies.  Nowhere else in the codebase
should ``2 ** halves * 3 ** fulls`` be recomputed.

Architecture
------------
:class:`SystemConfiguration` is a frozen dataclass.  Named constructors
(:meth:`SystemConfiguration.system_96` and friends) return the presets the
coupon is usually played with.  :func:`enumerate_systems` lists every valid
shape below a row ceiling, which a UI can use as slider steps.

Terminology follows the Swedish coupon: a half cover is a
*halvgardering*, a full cover a *helgardering*, a single a *spik*.

Typical usage::

    from stryktips.core.system_config import SystemConfiguration

    cfg = SystemConfiguration.system_96()
    cfg.total_rows   # 96
    cfg.cost         # 96.0

    # Custom shape, validated against the 13-match slate:
    custom = SystemConfiguration(halves=4, fulls=2, singles=7)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from stryktips.core.domain import CoverageClass
from stryktips.core.errors import ConfigurationMismatchError, SystemTooLargeError

#: Matches on a Stryktipset coupon.
SLATE_SIZE: Final[int] = 13

#: Stake per row in currency units (1 SEK on the real coupon).
COST_PER_ROW: Final[float] = 1.0

#: Default operational ceiling on expanded rows.  Above this a request is
#: rejected with :class:`SystemTooLargeError` instead of exhausting memory.
DEFAULT_MAX_ROWS: Final[int] = 2000

#: Search bounds used by :func:`enumerate_systems`.
_MAX_ENUM_HALVES: Final[int] = 10
_MAX_ENUM_FULLS: Final[int] = 6


def row_count(halves: int, fulls: int) -> int:
    """Rows produced by a system: ``2 ** halves · 3 ** fulls`` (singles contribute ×1)."""
    return (2 ** halves) * (3 ** fulls)


@dataclass(frozen=True)
class SystemConfiguration:
    """Immutable coverage distribution over a fixed-size slate.

    Attributes:
        halves: Matches covered with two outcomes (halvgarderingar).
        fulls: Matches covered with all three outcomes (helgarderingar).
        singles: Matches covered with one outcome (spikar).
        slate_size: Matches on the coupon.  ``halves + fulls + singles`` must
            equal this.  Defaults to 13 (Stryktipset).
        cost_per_row: Stake per row.

    Raises:
        ConfigurationMismatchError: On construction, if any count is negative
            or the counts do not sum to ``slate_size``.
    """

    halves: int
    fulls: int
    singles: int
    slate_size: int = SLATE_SIZE
    cost_per_row: float = COST_PER_ROW

    def __post_init__(self) -> None:
        counts = {"halves": self.halves, "fulls": self.fulls, "singles": self.singles}
        for name, value in counts.items():
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationMismatchError(f"{name} must be an integer, got {value!r}.")
            if value < 0:
                raise ConfigurationMismatchError(f"{name} must be ≥ 0, got {value!r}.")
        total = self.halves + self.fulls + self.singles
        if total != self.slate_size:
            raise ConfigurationMismatchError(
                f"halves ({self.halves}) + fulls ({self.fulls}) + singles ({self.singles}) "
                f"= {total}, expected {self.slate_size}."
            )
        if self.cost_per_row < 0:
            raise ConfigurationMismatchError(
                f"cost_per_row must be ≥ 0, got {self.cost_per_row!r}."
            )

    # ------------------------------------------------------------------ #
    #  Derived quantities                                                  #
    # ------------------------------------------------------------------ #

    @property
    def total_rows(self) -> int:
        return row_count(self.halves, self.fulls)

    @property
    def cost(self) -> float:
        return self.total_rows * self.cost_per_row

    def count_for(self, coverage: CoverageClass) -> int:
        """Number of matches the configuration assigns to ``coverage``."""
        return {
            CoverageClass.HALF: self.halves,
            CoverageClass.FULL: self.fulls,
            CoverageClass.SINGLE: self.singles,
        }[coverage]

    def check_ceiling(self, max_rows: int = DEFAULT_MAX_ROWS) -> None:
        """Raise :class:`SystemTooLargeError` if ``total_rows > max_rows``."""
        if self.total_rows > max_rows:
            raise SystemTooLargeError(self.total_rows, max_rows)

    @property
    def description(self) -> str:
        """Swedish coupon description, e.g. ``"5 halvgarderingar + 1 helgardering + 7 spikar"``."""
        parts = []
        if self.halves:
            parts.append(f"{self.halves} halvgardering{'ar' if self.halves > 1 else ''}")
        if self.fulls:
            parts.append(f"{self.fulls} helgardering{'ar' if self.fulls > 1 else ''}")
        if self.singles:
            parts.append(f"{self.singles} spik{'ar' if self.singles > 1 else ''}")
        return " + ".join(parts) if parts else "Basissystem"

    def to_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "cost": self.cost,
            "cost_per_row": self.cost_per_row,
            "distribution": {
                "halves": self.halves,
                "fulls": self.fulls,
                "singles": self.singles,
            },
            "description": self.description,
        }

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def system_96(cls) -> SystemConfiguration:
        """5 halves + 1 full + 7 singles = 96 rows."""
        return cls(halves=5, fulls=1, singles=7)

    @classmethod
    def system_64(cls) -> SystemConfiguration:
        """6 halves + 7 singles = 64 rows."""
        return cls(halves=6, fulls=0, singles=7)

    @classmethod
    def system_48(cls) -> SystemConfiguration:
        """4 halves + 1 full + 8 singles = 48 rows."""
        return cls(halves=4, fulls=1, singles=8)

    @classmethod
    def system_32(cls) -> SystemConfiguration:
        """5 halves + 8 singles = 32 rows."""
        return cls(halves=5, fulls=0, singles=8)

    @classmethod
    def from_preset(cls, name: str) -> SystemConfiguration:
        """Look up a preset by name (``"system-96"``, ``"system-64"``, ...).

        Raises:
            ConfigurationMismatchError: If the name is not a known preset.
        """
        try:
            return PRESETS[name]
        except KeyError:
            raise ConfigurationMismatchError(
                f"Unknown system preset {name!r}; choose from {sorted(PRESETS)}."
            ) from None

    def __repr__(self) -> str:
        return (
            f"SystemConfiguration(halves={self.halves}, fulls={self.fulls}, "
            f"singles={self.singles}, rows={self.total_rows})"
        )


PRESETS: Final[dict[str, SystemConfiguration]] = {
    "system-96": SystemConfiguration.system_96(),
    "system-64": SystemConfiguration.system_64(),
    "system-48": SystemConfiguration.system_48(),
    "system-32": SystemConfiguration.system_32(),
}


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


def enumerate_systems(
    max_rows: int = 1000,
    slate_size: int = SLATE_SIZE,
) -> list[SystemConfiguration]:
    """Every distinct system size up to ``max_rows``, one shape per row count.

    Shapes are searched over halves 0–10 and fulls 0–6 with singles filling
    the rest of the slate.  When several shapes produce the same row count
    the first found (fewest halves, then fewest fulls) is kept.

    Returns:
        Configurations sorted by ascending ``total_rows``.
    """
    by_rows: dict[int, SystemConfiguration] = {}
    for halves in range(0, min(_MAX_ENUM_HALVES, slate_size) + 1):
        for fulls in range(0, min(_MAX_ENUM_FULLS, slate_size - halves) + 1):
            rows = row_count(halves, fulls)
            if rows > max_rows or rows in by_rows:
                continue
            by_rows[rows] = SystemConfiguration(
                halves=halves,
                fulls=fulls,
                singles=slate_size - halves - fulls,
                slate_size=slate_size,
            )
    return [by_rows[r] for r in sorted(by_rows)]


def available_sizes(max_rows: int = 1000) -> list[int]:
    """Row counts of :func:`enumerate_systems`, for slider steps."""
    return [cfg.total_rows for cfg in enumerate_systems(max_rows)]


def closest_system(target_rows: int, max_rows: int = 1000) -> SystemConfiguration:
    """The catalogued system whose row count is nearest ``target_rows``.

    Ties resolve to the smaller system (cheaper coupon).
    """
    systems = enumerate_systems(max_rows)
    return min(systems, key=lambda cfg: (abs(cfg.total_rows - target_rows), cfg.total_rows))
