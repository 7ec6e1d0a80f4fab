"""Dependency-injection interface for match intelligence signals.

The coverage allocator does not know where a recommendation comes from.
Market-sentiment scrapers, team-form models and expert tipsters all sit
outside this engine; they reach it only through the narrow contract
defined here:

* :class:`IntelligenceSignal`: per-match DTO carrying a safe pick, a value
  pick, a contrarian pick and the scalar scores the allocator weighs.
* :class:`BaseSignalProvider`: abstract provider.  Any source is swapped in
  by subclassing it and passing an instance to the allocator.

Design choices
--------------
* :class:`BaseSignalProvider` is an ABC rather than a ``typing.Protocol`` so
  the allocator can guard its constructor with ``isinstance`` and provider
  authors are forced to read the contract.
* :class:`IntelligenceSignal` is frozen and slotted so a provider may cache
  signals and share them across threads.
* Providers must return a signal for **every** match they are asked about.
  A provider with nothing to say should fall back to odds-derived picks
  rather than return ``None``; ``stryktips.services.signals`` has one that
  does exactly that.

Run tests with::

    pytest tests/test_signals.py -v
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from stryktips.core.domain import MatchOdds, Outcome, Probabilities


# ---------------------------------------------------------------------------
# Data transfer object
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class IntelligenceSignal:
    """Immutable recommendation for one match.

    Attributes:
        match_id: Fixture the signal refers to.
        recommended_outcome: The most defensible single outcome (the "safe
            pick").  Used for singles under the ``safe`` profile and as the
            anchor of half covers.
        value_outcome: The outcome with the best expected value.  Defaults to
            ``recommended_outcome`` when a source does not distinguish them.
        contrarian_outcome: The outcome the public under-backs.  Optional;
            when absent the allocator treats the value pick as contrarian.
        confidence: Confidence in ``recommended_outcome``, in [0, 1].
        contrarian_score: Strength of the contrarian opportunity, in [0, 1].
            0 means the public agrees with the odds; 1 means a large
            disagreement.
        source: Free-text provider name, carried into logs only.
    """

    match_id: str
    recommended_outcome: Outcome
    confidence: float
    value_outcome: Outcome | None = None
    contrarian_outcome: Outcome | None = None
    contrarian_score: float = 0.0
    source: str = "external"

    @property
    def safe_pick(self) -> Outcome:
        return self.recommended_outcome

    @property
    def value_pick(self) -> Outcome:
        return self.value_outcome if self.value_outcome is not None else self.recommended_outcome

    @property
    def contrarian_pick(self) -> Outcome:
        return self.contrarian_outcome if self.contrarian_outcome is not None else self.value_pick

    def validate(self) -> None:
        """Check score ranges.

        Raises:
            ValueError: If ``confidence`` or ``contrarian_score`` is outside
                [0, 1].
        """
        for name in ("confidence", "contrarian_score"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(
                    f"IntelligenceSignal.{name} must be in [0, 1], got {value!r} "
                    f"for match {self.match_id!r}."
                )

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "recommended_outcome": self.safe_pick.value,
            "value_outcome": self.value_pick.value,
            "contrarian_outcome": self.contrarian_pick.value,
            "confidence": round(self.confidence, 4),
            "contrarian_score": round(self.contrarian_score, 4),
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Abstract provider
# ---------------------------------------------------------------------------


class BaseSignalProvider(ABC):
    """Abstract source of per-match intelligence signals.

    Subclasses implement :meth:`signal_for`.  :meth:`signals_for_slate` has a
    default implementation that calls it once per match; override it when a
    source can batch requests.
    """

    #: Human-readable provider name for logs.
    name: str = "base"

    @abstractmethod
    def signal_for(self, match: MatchOdds, probabilities: Probabilities) -> IntelligenceSignal:
        """Return the signal for a single match.

        Args:
            match: Odds (and optional public shares) for the fixture.
            probabilities: Normalised, risk-adjusted probabilities the
                allocator is working with.

        Returns:
            A validated :class:`IntelligenceSignal` whose ``match_id`` equals
            ``match.match_id``.
        """

    def signals_for_slate(
        self,
        matches: Sequence[MatchOdds],
        probabilities: Sequence[Probabilities],
    ) -> dict[str, IntelligenceSignal]:
        """Signals for every match, keyed by ``match_id``.

        Raises:
            ValueError: If the two sequences differ in length or a provider
                returns a signal for the wrong match.
        """
        if len(matches) != len(probabilities):
            raise ValueError(
                f"Got {len(matches)} matches but {len(probabilities)} probability triples."
            )
        signals: dict[str, IntelligenceSignal] = {}
        for match, probs in zip(matches, probabilities):
            signal = self.signal_for(match, probs)
            if signal.match_id != match.match_id:
                raise ValueError(
                    f"{type(self).__name__} returned a signal for {signal.match_id!r} "
                    f"when asked about {match.match_id!r}."
                )
            signal.validate()
            signals[match.match_id] = signal
        return signals
