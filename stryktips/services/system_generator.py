"""
End-to-end system generation for a Stryktipset slate.

Pipeline::

    odds -> normalize_odds -> adjust_for_risk -> CoverageAllocator
         -> MatchCoveragePlan[] -> CombinationExpander -> RowSet

Every input is validated before any computation starts: slate length and
unique ids, odds, risk profile, configuration shape and the row ceiling.
A rejected request leaves nothing half-built behind.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from stryktips.core.domain import MatchOdds, Probabilities, RiskProfile
from stryktips.core.errors import SlateError
from stryktips.core.odds_math import adjust_for_risk, normalize_odds
from stryktips.core.signal_interface import BaseSignalProvider
from stryktips.core.system_config import DEFAULT_MAX_ROWS, SystemConfiguration
from stryktips.services.coverage import ChaosParameters, CoverageAllocator, MatchCoveragePlan
from stryktips.services.expansion import CombinationExpander, RowSet
from stryktips.services.payout import PayoutEstimator
from stryktips.services.value_analysis import ValueAnalyzer, ValueReport

logger = logging.getLogger(__name__)


def validate_slate(matches: Sequence[MatchOdds], slate_size: int) -> None:
    """
    Reject a slate that cannot be played.

    Raises:
        SlateError: Wrong number of matches or a repeated match id.
        InvalidOddsError: Any price not finite or ≤ 1.0.
    """
    if len(matches) != slate_size:
        raise SlateError(f"Expected {slate_size} matches, got {len(matches)}.")
    seen = set()
    for match in matches:
        if match.match_id in seen:
            raise SlateError(f"Duplicate match id {match.match_id!r} on the slate.")
        seen.add(match.match_id)
        match.validate()


def _new_system_id() -> str:
    return f"system_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class GeneratedSystem:
    """A built system: the per-match plan plus the rows it stands for."""

    system_id: str
    plans: List[MatchCoveragePlan]
    configuration: SystemConfiguration
    risk_profile: RiskProfile
    rows: RowSet
    expected_correct: float
    expected_payout: float
    value_report: Optional[ValueReport] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def cost(self) -> float:
        return self.configuration.cost

    @property
    def probabilities(self) -> List[Probabilities]:
        return [p.probabilities for p in self.plans]

    def to_dict(self, include_rows: bool = False) -> Dict:
        """
        Serialisable view.  Rows are reduced to their count unless
        ``include_rows`` is set; a full row list is large and most clients
        only render the per-match plan.
        """
        out = {
            "id": self.system_id,
            "matches": [p.to_dict() for p in self.plans],
            "configuration": self.configuration.to_dict(),
            "risk_profile": self.risk_profile.value,
            "total_rows": self.total_rows,
            "cost": self.cost,
            "expected_correct": round(self.expected_correct, 4),
            "expected_payout": round(self.expected_payout, 2),
            "created_at": self.created_at,
        }
        if include_rows:
            out["rows"] = [r.to_dict() for r in self.rows]
        else:
            out["rows"] = {"length": self.total_rows}
        if self.value_report is not None:
            out["value"] = self.value_report.to_dict()
        return out


class SystemGenerator:
    """
    Builds ``GeneratedSystem``s.

    Args:
        max_rows: Row ceiling; larger configurations are rejected before
            allocation.
        payout: Payout estimator shared by expansion and summaries.
        chaos: Allocator thresholds.
        value_analyzer: When given, a value report is attached to every
            system.
    """

    def __init__(
        self,
        max_rows: int = DEFAULT_MAX_ROWS,
        payout: Optional[PayoutEstimator] = None,
        chaos: Optional[ChaosParameters] = None,
        value_analyzer: Optional[ValueAnalyzer] = None,
    ):
        self.max_rows = max_rows
        self.payout = payout or PayoutEstimator()
        self.chaos = chaos or ChaosParameters()
        self.value_analyzer = value_analyzer
        self.expander = CombinationExpander(max_rows=max_rows, payout=self.payout)

    def prepare_probabilities(
        self,
        matches: Sequence[MatchOdds],
        profile: RiskProfile,
    ) -> List[Probabilities]:
        """De-vig then skew every match for ``profile``."""
        return [adjust_for_risk(normalize_odds(m), profile) for m in matches]

    def generate(
        self,
        matches: Sequence[MatchOdds],
        config: SystemConfiguration,
        profile: RiskProfile,
        rng: Optional[np.random.Generator] = None,
        signal_provider: Optional[BaseSignalProvider] = None,
    ) -> GeneratedSystem:
        """
        Generate a system for ``matches``.

        Raises:
            UnknownRiskProfileError: Profile not safe, balanced or risky.
            SlateError: Wrong match count or duplicate ids.
            InvalidOddsError: Bad prices.
            SystemTooLargeError: ``config`` expands past ``max_rows``.
        """
        profile = RiskProfile.parse(profile)
        validate_slate(matches, config.slate_size)
        config.check_ceiling(self.max_rows)

        probabilities = self.prepare_probabilities(matches, profile)
        allocator = CoverageAllocator(
            profile, rng=rng, signal_provider=signal_provider, chaos=self.chaos
        )
        plans = allocator.allocate(matches, probabilities, config)
        rows = self.expander.expand(plans)

        value_report = None
        if self.value_analyzer is not None:
            value_report = self.value_analyzer.analyze_slate(matches)

        system = GeneratedSystem(
            system_id=_new_system_id(),
            plans=plans,
            configuration=config,
            risk_profile=profile,
            rows=rows,
            expected_correct=rows.expected_correct,
            expected_payout=rows.expected_payout,
            value_report=value_report,
        )
        logger.info(
            "Generated %s (%s, %d rows, expected correct %.2f)",
            system.system_id, profile.value, system.total_rows, system.expected_correct,
        )
        return system


def generate_system(
    matches: Sequence[MatchOdds],
    config: SystemConfiguration,
    profile: RiskProfile,
    seed: Optional[int] = None,
    signal_provider: Optional[BaseSignalProvider] = None,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> GeneratedSystem:
    """Convenience wrapper: one-off ``SystemGenerator`` with a seeded generator."""
    generator = SystemGenerator(max_rows=max_rows)
    return generator.generate(
        matches, config, profile,
        rng=np.random.default_rng(seed),
        signal_provider=signal_provider,
    )
