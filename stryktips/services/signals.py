"""
Intelligence signal providers and odds-movement tracking.

The coverage allocator consumes per-match recommendations through
``BaseSignalProvider`` (see ``stryktips.core.signal_interface``).  This
module ships the two providers the engine needs on its own:

    - ``OddsSignalProvider``   derives safe / value / contrarian picks from
                               the odds and, when present, the public shares.
    - ``StaticSignalProvider`` serves externally supplied signals and falls
                               back to another provider for the rest.

It also holds ``OddsHistory``, an explicit snapshot store, and
``detect_steam_moves`` which reads it.  There is no module-level cache: a
caller that wants movement detection owns the history object and passes it
in.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from stryktips.core.domain import ALL_OUTCOMES, MatchOdds, Outcome, Probabilities
from stryktips.core.errors import SlateError
from stryktips.core.kelly import best_value_outcome, value_score
from stryktips.core.odds_math import normalize_odds, normalized_entropy, renormalize
from stryktips.core.signal_interface import BaseSignalProvider, IntelligenceSignal

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Confidence weights for the odds-derived provider
# ---------------------------------------------------------------------------
# confidence = 0.25 * value + 0.30 * expert_consensus + 0.15 * home_advantage
#            + 0.20 * (1 - uncertainty) + 0.10 * contrarian
W_VALUE = 0.25
W_EXPERT = 0.30
W_HOME = 0.15
W_CERTAINTY = 0.20
W_CONTRARIAN = 0.10

# Expert consensus assumed when no tipster data is available.
NEUTRAL_EXPERT_CONSENSUS = 0.5

# Base home-advantage factor, clamped to [0.4, 0.8].
BASE_HOME_ADVANTAGE = 0.6

# Summed |odds prob - public share| that maps to a contrarian score of 1.
CONTRARIAN_SCALE = 0.6

# Below this contrarian score the public agrees with the odds closely enough
# that no contrarian pick is emitted.
MIN_CONTRARIAN_SCORE = 0.3

# ---------------------------------------------------------------------------
# Steam-move thresholds (percentage change between consecutive snapshots)
# ---------------------------------------------------------------------------
MAX_SNAPSHOTS = 20
MIN_STEAM_MOVE_PCT = 2.0
MODERATE_MOVE_PCT = 5.0
STRONG_MOVE_PCT = 10.0
CONFIDENCE_SCALE_PCT = 15.0
MAX_STEAM_CONFIDENCE = 0.95

# A move whose latest snapshot lands within this window before kickoff is "late".
LATE_MOVE_WINDOW = timedelta(hours=6)


def contrarian_score(match: MatchOdds) -> float:
    """
    Disagreement between the odds and the public shares, in [0, 1].

    0 when the match carries no public shares.
    """
    if match.public_shares is None or match.public_shares.total <= 0:
        return 0.0
    odds_probs = normalize_odds(match)
    public = renormalize(match.public_shares)
    disagreement = sum(abs(a - b) for a, b in zip(odds_probs, public))
    return min(1.0, disagreement / CONTRARIAN_SCALE)


def value_pick(probs: Probabilities, match: MatchOdds) -> Outcome:
    """Outcome with the best expected value; de-vig ties go to the favourite."""
    return best_value_outcome(probs, match)


class OddsSignalProvider(BaseSignalProvider):
    """
    Default provider: every pick is derived from the odds themselves.

    safe pick        most probable outcome
    value pick       best expected value under ``probabilities``
    contrarian pick  least-backed outcome by the public, only when the
                     contrarian score reaches 0.3
    """

    name = "odds"

    def __init__(
        self,
        expert_consensus: float = NEUTRAL_EXPERT_CONSENSUS,
        home_advantage: float = BASE_HOME_ADVANTAGE,
    ):
        if not (0.0 <= expert_consensus <= 1.0):
            raise ValueError(f"expert_consensus must be in [0, 1], got {expert_consensus!r}.")
        self.expert_consensus = expert_consensus
        self.home_advantage = max(0.4, min(0.8, home_advantage))

    def signal_for(self, match: MatchOdds, probabilities: Probabilities) -> IntelligenceSignal:
        value = value_score(probabilities, match)
        uncertainty = normalized_entropy(probabilities)
        contrarian = contrarian_score(match)

        contrarian_outcome: Optional[Outcome] = None
        if contrarian >= MIN_CONTRARIAN_SCORE:
            contrarian_outcome = renormalize(match.public_shares).least_likely()

        confidence = (
            W_VALUE * value
            + W_EXPERT * self.expert_consensus
            + W_HOME * self.home_advantage
            + W_CERTAINTY * (1.0 - uncertainty)
            + W_CONTRARIAN * contrarian
        )
        return IntelligenceSignal(
            match_id=match.match_id,
            recommended_outcome=probabilities.most_likely(),
            value_outcome=value_pick(probabilities, match),
            contrarian_outcome=contrarian_outcome,
            confidence=max(0.0, min(1.0, confidence)),
            contrarian_score=contrarian,
            source=self.name,
        )


class StaticSignalProvider(BaseSignalProvider):
    """
    Serves signals supplied by an external collaborator.

    Matches without a supplied signal are delegated to ``fallback``
    (an ``OddsSignalProvider`` by default).
    """

    name = "static"

    def __init__(
        self,
        signals: Mapping[str, IntelligenceSignal],
        fallback: Optional[BaseSignalProvider] = None,
    ):
        for match_id, signal in signals.items():
            if signal.match_id != match_id:
                raise ValueError(
                    f"Signal keyed {match_id!r} belongs to match {signal.match_id!r}."
                )
            signal.validate()
        self._signals = dict(signals)
        self.fallback = fallback if fallback is not None else OddsSignalProvider()

    def signal_for(self, match: MatchOdds, probabilities: Probabilities) -> IntelligenceSignal:
        signal = self._signals.get(match.match_id)
        if signal is None:
            logger.debug("No external signal for %s, using %s", match.match_id, self.fallback.name)
            return self.fallback.signal_for(match, probabilities)
        return signal

    def signals_for_slate(
        self,
        matches: Sequence[MatchOdds],
        probabilities: Sequence[Probabilities],
    ) -> Dict[str, IntelligenceSignal]:
        """Like the base method, but every supplied signal must match the slate."""
        unknown = set(self._signals) - {m.match_id for m in matches}
        if unknown:
            raise SlateError(f"Signals supplied for matches not on the slate: {sorted(unknown)}.")
        return super().signals_for_slate(matches, probabilities)


# ---------------------------------------------------------------------------
# Odds history and steam moves
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OddsSnapshot:
    odds: float
    timestamp: datetime


@dataclass(frozen=True)
class SteamMove:
    """A significant price movement on one outcome."""

    match_id: str
    outcome: Outcome
    movement_pct: float
    direction: str  # "steam" (price shortened) or "reverse-steam"
    strength: str  # "weak" | "moderate" | "strong"
    confidence: float
    timing: str  # "early" | "late"

    def to_dict(self) -> Dict:
        return {
            "match_id": self.match_id,
            "outcome": self.outcome.value,
            "movement_pct": round(self.movement_pct, 2),
            "direction": self.direction,
            "strength": self.strength,
            "confidence": round(self.confidence, 4),
            "timing": self.timing,
        }


class OddsHistory:
    """
    Bounded per-(match, outcome) store of price snapshots.

    Keeps the last ``max_snapshots`` prices for each key; older snapshots are
    dropped first.
    """

    def __init__(self, max_snapshots: int = MAX_SNAPSHOTS):
        if max_snapshots < 1:
            raise ValueError(f"max_snapshots must be ≥ 1, got {max_snapshots!r}.")
        self.max_snapshots = max_snapshots
        self._snapshots: Dict[Tuple[str, Outcome], Deque[OddsSnapshot]] = {}

    def record(
        self,
        match_id: str,
        outcome: Outcome,
        odds: float,
        timestamp: Optional[datetime] = None,
    ) -> None:
        if odds <= 1.0:
            raise ValueError(f"Snapshot odds must be > 1.0, got {odds!r}.")
        key = (match_id, Outcome.parse(outcome))
        series = self._snapshots.setdefault(key, deque(maxlen=self.max_snapshots))
        series.append(OddsSnapshot(odds, timestamp or datetime.now(timezone.utc)))

    def record_match(self, match: MatchOdds, timestamp: Optional[datetime] = None) -> None:
        """Snapshot all three prices of ``match`` at once."""
        ts = timestamp or datetime.now(timezone.utc)
        for outcome in ALL_OUTCOMES:
            self.record(match.match_id, outcome, match.price(outcome), ts)

    def snapshots(self, match_id: str, outcome: Outcome) -> List[OddsSnapshot]:
        return list(self._snapshots.get((match_id, Outcome.parse(outcome)), ()))

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return sum(len(s) for s in self._snapshots.values())


def _as_utc(ts: datetime) -> datetime:
    # naive timestamps are taken to be UTC
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _classify_move(
    match: MatchOdds,
    outcome: Outcome,
    movement: float,
    last_seen: datetime,
) -> Optional[SteamMove]:
    magnitude = abs(movement)
    if magnitude < MIN_STEAM_MOVE_PCT:
        return None

    if magnitude > STRONG_MOVE_PCT:
        strength = "strong"
    elif magnitude > MODERATE_MOVE_PCT:
        strength = "moderate"
    else:
        strength = "weak"

    timing = "early"
    if match.kickoff is not None and _as_utc(match.kickoff) - _as_utc(last_seen) <= LATE_MOVE_WINDOW:
        timing = "late"

    return SteamMove(
        match_id=match.match_id,
        outcome=outcome,
        movement_pct=movement,
        direction="steam" if movement < 0 else "reverse-steam",
        strength=strength,
        confidence=min(MAX_STEAM_CONFIDENCE, magnitude / CONFIDENCE_SCALE_PCT),
        timing=timing,
    )


def detect_steam_moves(matches: Sequence[MatchOdds], history: OddsHistory) -> List[SteamMove]:
    """
    Compare current prices against the most recent recorded snapshot.

    Only outcomes with at least two snapshots in ``history`` are considered.
    Movement is ``(current - previous) / previous * 100``; moves under 2 %
    are ignored.  Call this before recording the current prices, otherwise
    the latest snapshot equals the current price and nothing moves.

    Returns:
        Steam moves sorted by descending confidence.  An empty list is the
        normal result for a quiet market.
    """
    moves: List[SteamMove] = []
    for match in matches:
        for outcome in ALL_OUTCOMES:
            series = history.snapshots(match.match_id, outcome)
            if len(series) < 2:
                continue
            previous = series[-1]
            movement = (match.price(outcome) - previous.odds) / previous.odds * 100.0
            move = _classify_move(match, outcome, movement, previous.timestamp)
            if move is not None:
                moves.append(move)

    moves.sort(key=lambda m: m.confidence, reverse=True)
    if moves:
        logger.info("Detected %d steam moves across %d matches", len(moves), len(matches))
    return moves
