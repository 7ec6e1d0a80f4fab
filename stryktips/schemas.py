"""
Pydantic request/response schemas for the Stryktips API.

Matches, signals and rows arrive in the request body; nothing is fetched
from the outside.  Each input model knows how to turn itself into the
engine's domain objects, so endpoint functions stay thin.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from stryktips.core.domain import MatchOdds, Outcome, Probabilities
from stryktips.core.errors import SlateError
from stryktips.core.signal_interface import IntelligenceSignal
from stryktips.core.system_config import PRESETS, SystemConfiguration
from stryktips.services.row_generator import RowFilters, RowStrategy

OutcomeSymbol = Literal["1", "X", "2"]
RiskProfileName = Literal["safe", "balanced", "risky"]


# ---------------------------------------------------------------------------
# Slate
# ---------------------------------------------------------------------------

class PublicSharesIn(BaseModel):
    """Share of the public pool on each outcome, as fractions."""
    home: float = Field(..., ge=0, le=1)
    draw: float = Field(..., ge=0, le=1)
    away: float = Field(..., ge=0, le=1)


class MatchIn(BaseModel):
    """One fixture with its decimal odds."""

    match_id: str = Field(..., min_length=1, max_length=64)
    home: float = Field(..., gt=1, description="Decimal odds for a home win (1)")
    draw: float = Field(..., gt=1, description="Decimal odds for a draw (X)")
    away: float = Field(..., gt=1, description="Decimal odds for an away win (2)")
    home_team: str = Field("", max_length=120)
    away_team: str = Field("", max_length=120)
    kickoff: Optional[datetime] = None
    public_shares: Optional[PublicSharesIn] = None

    def to_domain(self) -> MatchOdds:
        shares = None
        if self.public_shares is not None:
            shares = Probabilities(
                self.public_shares.home, self.public_shares.draw, self.public_shares.away
            )
        return MatchOdds(
            match_id=self.match_id,
            home=self.home,
            draw=self.draw,
            away=self.away,
            home_team=self.home_team,
            away_team=self.away_team,
            kickoff=self.kickoff,
            public_shares=shares,
        )


class SignalIn(BaseModel):
    """
    Externally supplied recommendation for one match.

    Matches without a signal fall back to the odds-derived provider.
    """

    match_id: str = Field(..., min_length=1, max_length=64)
    recommended_outcome: OutcomeSymbol
    confidence: float = Field(..., ge=0, le=1)
    value_outcome: Optional[OutcomeSymbol] = None
    contrarian_outcome: Optional[OutcomeSymbol] = None
    contrarian_score: float = Field(0.0, ge=0, le=1)

    def to_domain(self) -> IntelligenceSignal:
        return IntelligenceSignal(
            match_id=self.match_id,
            recommended_outcome=Outcome(self.recommended_outcome),
            confidence=self.confidence,
            value_outcome=Outcome(self.value_outcome) if self.value_outcome else None,
            contrarian_outcome=(
                Outcome(self.contrarian_outcome) if self.contrarian_outcome else None
            ),
            contrarian_score=self.contrarian_score,
            source="request",
        )


class DistributionIn(BaseModel):
    """Custom coverage distribution.  Counts must add up to the slate size."""
    halves: int = Field(..., ge=0)
    fulls: int = Field(..., ge=0)
    singles: int = Field(..., ge=0)


def _matches_to_domain(matches: List[MatchIn]) -> List[MatchOdds]:
    return [m.to_domain() for m in matches]


# ---------------------------------------------------------------------------
# System generation
# ---------------------------------------------------------------------------

class SystemGenerateRequest(BaseModel):
    """
    Payload for POST /api/systems/generate.

    Pick the system shape either by ``preset`` or by ``distribution``; with
    neither, the 96-row preset is used.  ``bankroll`` turns on the value
    report (Kelly stakes are sized against it).
    """

    matches: List[MatchIn] = Field(..., min_length=1)
    risk_profile: RiskProfileName = "balanced"
    preset: Optional[str] = Field(None, description='e.g. "system-96"')
    distribution: Optional[DistributionIn] = None
    seed: Optional[int] = Field(None, ge=0)
    bankroll: Optional[float] = Field(None, gt=0)
    signals: List[SignalIn] = Field(default_factory=list)
    include_rows: bool = False

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PRESETS:
            raise ValueError(f"Unknown preset {v!r}; choose from {sorted(PRESETS)}")
        return v

    def configuration(self) -> SystemConfiguration:
        """Resolve ``preset`` / ``distribution`` into a configuration."""
        if self.distribution is not None:
            return SystemConfiguration(
                halves=self.distribution.halves,
                fulls=self.distribution.fulls,
                singles=self.distribution.singles,
            )
        return SystemConfiguration.from_preset(self.preset or "system-96")

    def domain_matches(self) -> List[MatchOdds]:
        return _matches_to_domain(self.matches)

    def domain_signals(self) -> Dict[str, IntelligenceSignal]:
        """
        Signals keyed by match id.

        Raises:
            SlateError: A match id is repeated or not on the slate.
        """
        slate_ids = {m.match_id for m in self.matches}
        signals: Dict[str, IntelligenceSignal] = {}
        for s in self.signals:
            if s.match_id in signals:
                raise SlateError(f"Duplicate signal for match {s.match_id!r}.")
            if s.match_id not in slate_ids:
                raise SlateError(f"Signal for match {s.match_id!r}, which is not on the slate.")
            signals[s.match_id] = s.to_domain()
        return signals

    model_config = {
        "json_schema_extra": {
            "example": {
                "matches": [
                    {"match_id": "m1", "home": 1.85, "draw": 3.40, "away": 4.50,
                     "home_team": "Arsenal", "away_team": "Chelsea"},
                ],
                "risk_profile": "balanced",
                "preset": "system-96",
                "seed": 42,
                "include_rows": False,
            }
        }
    }


class SystemSimulateRequest(SystemGenerateRequest):
    """Payload for POST /api/systems/simulate: generate, then evaluate."""
    iterations: Optional[int] = Field(None, ge=1_000, le=1_000_000)


# ---------------------------------------------------------------------------
# Row generation
# ---------------------------------------------------------------------------

class RowFiltersIn(BaseModel):
    """Constraints every generated row must satisfy."""

    min_draws: Optional[int] = Field(None, ge=0)
    max_draws: Optional[int] = Field(None, ge=0)
    min_away_wins: Optional[int] = Field(None, ge=0)
    max_away_wins: Optional[int] = Field(None, ge=0)
    max_favorites: Optional[int] = Field(None, ge=0)
    max_odds_below: Optional[float] = Field(None, gt=1)
    personal_biases: Dict[str, OutcomeSymbol] = Field(default_factory=dict)

    def to_domain(self) -> RowFilters:
        return RowFilters(
            min_draws=self.min_draws,
            max_draws=self.max_draws,
            min_away_wins=self.min_away_wins,
            max_away_wins=self.max_away_wins,
            max_favorites=self.max_favorites,
            max_odds_below=self.max_odds_below,
            personal_biases={k: Outcome(v) for k, v in self.personal_biases.items()},
        )


class RowGenerateRequest(BaseModel):
    """Payload for POST /api/rows/generate."""

    matches: List[MatchIn] = Field(..., min_length=1)
    strategy: Literal["weighted-random", "ev-based", "multi-row-coverage"] = "weighted-random"
    num_rows: int = Field(10, ge=1, le=500)
    risk_profile: RiskProfileName = "balanced"
    filters: Optional[RowFiltersIn] = None
    seed: Optional[int] = Field(None, ge=0)

    def row_strategy(self) -> RowStrategy:
        return RowStrategy(self.strategy)

    def domain_matches(self) -> List[MatchOdds]:
        return _matches_to_domain(self.matches)


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

class SimulateRequest(BaseModel):
    """
    Payload for POST /api/simulate.

    Rows are outcome strings in slate order, e.g. ``"1X21X21X21X21"``.
    Confidence intervals are only computed when exactly one row is sent.
    """

    matches: List[MatchIn] = Field(..., min_length=1)
    rows: List[str] = Field(..., min_length=1, max_length=100)
    iterations: Optional[int] = Field(None, ge=1_000, le=1_000_000)
    with_confidence_intervals: bool = False
    confidence_level: float = Field(0.95, gt=0, lt=1)
    seed: Optional[int] = Field(None, ge=0)

    @field_validator("rows")
    @classmethod
    def validate_rows(cls, v: List[str]) -> List[str]:
        cleaned = []
        for row in v:
            symbols = row.strip().upper()
            if not symbols or any(ch not in "1X2" for ch in symbols):
                raise ValueError(f"Row {row!r} must only contain '1', 'X' and '2'")
            cleaned.append(symbols)
        return cleaned

    def domain_rows(self) -> List[tuple]:
        return [tuple(Outcome.parse(ch) for ch in row) for row in self.rows]

    def domain_matches(self) -> List[MatchOdds]:
        return _matches_to_domain(self.matches)

    model_config = {
        "json_schema_extra": {
            "example": {
                "matches": [{"match_id": "m1", "home": 1.85, "draw": 3.40, "away": 4.50}],
                "rows": ["1"],
                "iterations": 10000,
                "with_confidence_intervals": True,
                "seed": 7,
            }
        }
    }


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class PresetResponse(BaseModel):
    """One named system shape."""
    name: str
    total_rows: int
    cost: float
    halves: int
    fulls: int
    singles: int
    description: str


class SizesResponse(BaseModel):
    """Row counts of every catalogued system under ``max_rows``."""
    max_rows: int
    sizes: List[int]
