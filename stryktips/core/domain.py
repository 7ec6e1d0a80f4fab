"""Value objects shared by every layer of the engine.

Everything here is an immutable, slotted dataclass or a string enum so the
objects can be hashed, cached and handed across thread boundaries without
copying.  Nothing in this module performs I/O.

Outcome symbols follow the Stryktipset coupon: ``"1"`` home win, ``"X"``
draw, ``"2"`` away win.  Multi-outcome coverage is written by concatenating
symbols in coupon order (``"1X"``, ``"12"``, ``"X2"``, ``"1X2"``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator

from stryktips.core.errors import InvalidOddsError, UnknownRiskProfileError

#: Tolerance for the probability unit-sum invariant at stage boundaries.
PROB_SUM_TOL: float = 1e-9


class Outcome(str, Enum):
    """A single match result as written on the coupon."""

    HOME = "1"
    DRAW = "X"
    AWAY = "2"

    @property
    def key(self) -> str:
        """Attribute name used by :class:`Probabilities` and :class:`MatchOdds`."""
        return _OUTCOME_KEYS[self]

    @classmethod
    def parse(cls, value: str | Outcome) -> Outcome:
        if isinstance(value, Outcome):
            return value
        symbol = str(value).strip().upper()
        for outcome in cls:
            if outcome.value == symbol:
                return outcome
        raise ValueError(f"Unknown outcome {value!r}; expected one of '1', 'X', '2'.")


_OUTCOME_KEYS = {Outcome.HOME: "home", Outcome.DRAW: "draw", Outcome.AWAY: "away"}

#: Coupon order.  Iteration over outcomes always follows this tuple.
ALL_OUTCOMES: tuple[Outcome, ...] = (Outcome.HOME, Outcome.DRAW, Outcome.AWAY)


def outcome_symbol(outcomes: Iterable[Outcome]) -> str:
    """Render a set of outcomes in coupon order, e.g. ``{X, 1} -> "1X"``."""
    chosen = set(outcomes)
    return "".join(o.value for o in ALL_OUTCOMES if o in chosen)


def parse_outcome_symbol(symbol: str) -> tuple[Outcome, ...]:
    """Inverse of :func:`outcome_symbol`.  ``"X2" -> (DRAW, AWAY)``."""
    parsed = {Outcome.parse(ch) for ch in symbol.strip()}
    if not parsed:
        raise ValueError("Outcome symbol must not be empty.")
    return tuple(o for o in ALL_OUTCOMES if o in parsed)


class RiskProfile(str, Enum):
    """User-selected appetite for longshots."""

    SAFE = "safe"
    BALANCED = "balanced"
    RISKY = "risky"

    @classmethod
    def parse(cls, value: str | RiskProfile) -> RiskProfile:
        if isinstance(value, RiskProfile):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownRiskProfileError(
                f"Unknown risk profile {value!r}; expected 'safe', 'balanced' or 'risky'."
            ) from None


class CoverageClass(Enum):
    """How many of the three outcomes a system covers for one match."""

    SINGLE = 1
    HALF = 2
    FULL = 3

    @property
    def cardinality(self) -> int:
        return self.value


@dataclass(slots=True, frozen=True)
class Probabilities:
    """Home/draw/away probability triple.

    Construction does not enforce the unit sum so intermediate, unnormalised
    triples can be represented; call :meth:`validate` at stage boundaries.
    """

    home: float
    draw: float
    away: float

    def get(self, outcome: Outcome) -> float:
        return getattr(self, outcome.key)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.home, self.draw, self.away)

    def __iter__(self) -> Iterator[float]:
        return iter(self.as_tuple())

    @property
    def total(self) -> float:
        return self.home + self.draw + self.away

    def most_likely(self) -> Outcome:
        """Highest-probability outcome; ties resolve in coupon order."""
        return max(ALL_OUTCOMES, key=lambda o: (self.get(o), -ALL_OUTCOMES.index(o)))

    def least_likely(self) -> Outcome:
        """Lowest-probability outcome; ties resolve in coupon order."""
        return min(ALL_OUTCOMES, key=lambda o: (self.get(o), ALL_OUTCOMES.index(o)))

    def ranked(self) -> tuple[Outcome, ...]:
        """Outcomes sorted by descending probability (stable in coupon order)."""
        return tuple(sorted(ALL_OUTCOMES, key=lambda o: -self.get(o)))

    def validate(self, tol: float = PROB_SUM_TOL) -> None:
        """Raise ``ValueError`` unless every entry is in [0, 1] and the sum is 1."""
        for value in self.as_tuple():
            if not (0.0 <= value <= 1.0) or math.isnan(value):
                raise ValueError(f"Probability {value!r} outside [0, 1] in {self!r}.")
        if abs(self.total - 1.0) > tol:
            raise ValueError(
                f"Probabilities sum to {self.total!r}, expected 1.0 ± {tol}."
            )

    def to_dict(self) -> dict[str, float]:
        return {"home": self.home, "draw": self.draw, "away": self.away}


@dataclass(slots=True, frozen=True)
class MatchOdds:
    """Bookmaker decimal odds for one fixture on the slate.

    Attributes:
        match_id: Unique identifier within the slate.
        home: Decimal odds for a home win (coupon ``1``).
        draw: Decimal odds for a draw (``X``).
        away: Decimal odds for an away win (``2``).
        home_team: Display name; not used in any calculation.
        away_team: Display name; not used in any calculation.
        kickoff: Optional start time.  Only used to classify odds movements
            as early or late.
        public_shares: Optional share of the public pool on each outcome
            ("Svenska Folket"), as fractions.  Used as the market-sentiment
            input to value analysis and the default signal provider.
    """

    match_id: str
    home: float
    draw: float
    away: float
    home_team: str = ""
    away_team: str = ""
    kickoff: datetime | None = None
    public_shares: Probabilities | None = None

    def price(self, outcome: Outcome) -> float:
        return getattr(self, outcome.key)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.home, self.draw, self.away)

    def validate(self) -> None:
        """Reject odds that are not finite or not strictly greater than 1.0."""
        for outcome in ALL_OUTCOMES:
            value = self.price(outcome)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 1.0:
                raise InvalidOddsError(
                    f"Invalid {outcome.key} odds {value!r} for match {self.match_id!r}: "
                    "decimal odds must be finite and > 1.0."
                )


@dataclass(slots=True, frozen=True)
class GeneratedRow:
    """One fully specified coupon row: exactly one outcome per match."""

    row_id: str
    outcomes: tuple[Outcome, ...]
    expected_correct: float
    expected_payout: float

    @property
    def symbols(self) -> str:
        return "".join(o.value for o in self.outcomes)

    def to_dict(self) -> dict:
        return {
            "id": self.row_id,
            "outcomes": [o.value for o in self.outcomes],
            "expected_correct": round(self.expected_correct, 4),
            "expected_payout": self.expected_payout,
        }


@dataclass(slots=True, frozen=True)
class ValueBet:
    """A positive-edge outcome with its Kelly sizing."""

    match_id: str
    outcome: Outcome
    edge: float
    kelly_fraction: float
    confidence: float
    recommended_stake: float

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "outcome": self.outcome.value,
            "edge": round(self.edge, 4),
            "kelly_fraction": round(self.kelly_fraction, 4),
            "confidence": round(self.confidence, 4),
            "recommended_stake": round(self.recommended_stake, 2),
        }
