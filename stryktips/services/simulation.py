"""
Monte Carlo evaluation of coupon rows and whole systems.

For a fixed row the question is how many of the 13 predictions will be
right once the matches are played.  Each trial draws a realised outcome
per match by inverse-CDF sampling,

    u ~ U[0, 1)
    realised = 1 if u < p_home
               X if u < p_home + p_draw
               2 otherwise

counts the hits and tallies the count.  Tallies become exact and at-least
probabilities for the prize levels 10..13, the mean hit count and an
expected payout under ``PayoutTable``.

For a whole system the engine never materialises rows.  Given one trial's
realised outcomes, the number of rows with exactly k hits follows from a
dynamic programme over the coverage plan:

    rows_k(after match i) = (m_i - hit_i) * rows_k + hit_i * rows_{k-1}

where m_i is the number of covered outcomes and hit_i is 1 if the realised
outcome is among them.

Trials are split across a ``ThreadPoolExecutor``; each worker owns a numpy
generator spawned from one ``SeedSequence`` and returns integer-valued
sums, which are added up at the end.  numpy releases the GIL inside the
vectorised kernels, so threads do run in parallel.  A ``CancellationToken``
is checked between chunks; cancellation discards every partial tally.

Usage::

    engine = SimulationEngine(seed=42)
    result = engine.simulate_row(row.outcomes, probabilities, iterations=100_000)
    print(result.average_correct, result.at_least[10])
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from stryktips.core.domain import ALL_OUTCOMES, GeneratedRow, Outcome, Probabilities
from stryktips.core.errors import InvalidIterationsError, SimulationCancelledError, SlateError
from stryktips.core.odds_math import ensure_normalized
from stryktips.services.coverage import MatchCoveragePlan
from stryktips.services.payout import PRIZE_LEVELS, PayoutTable

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 100_000
MIN_ITERATIONS = 1_000
MAX_ITERATIONS = 1_000_000

BOOTSTRAP_REPLICATES = 1_000
BOOTSTRAP_INNER_TRIALS = 1_000
DEFAULT_CONFIDENCE_LEVEL = 0.95

# Trials drawn per vectorised step; the cancellation token is checked
# between steps.
DEFAULT_CHUNK_SIZE = 50_000
DEFAULT_WORKERS = 4

_OUTCOME_INDEX = {o: i for i, o in enumerate(ALL_OUTCOMES)}

RowLike = Union[GeneratedRow, Sequence[Outcome], str]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """
    Cooperative cancel flag with an optional deadline.

    Shared between the caller and the simulation workers.  ``cancel()`` may
    be called from any thread.
    """

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise ``SimulationCancelledError`` if cancelled or past the deadline."""
        if self._event.is_set():
            raise SimulationCancelledError("Simulation cancelled by caller.")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise SimulationCancelledError("Simulation deadline exceeded.")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float

    def to_dict(self) -> Dict:
        return {"lower": round(self.lower, 4), "upper": round(self.upper, 4)}


@dataclass(frozen=True)
class ConfidenceIntervals:
    """Bootstrap percentile intervals on the two headline numbers."""

    level: float
    average_correct: ConfidenceInterval
    expected_payout: ConfidenceInterval
    replicates: int = BOOTSTRAP_REPLICATES

    def to_dict(self) -> Dict:
        return {
            "level": self.level,
            "replicates": self.replicates,
            "average_correct": self.average_correct.to_dict(),
            "expected_payout": self.expected_payout.to_dict(),
        }


@dataclass(frozen=True)
class SimulationResult:
    """Outcome distribution of one row."""

    row_id: str
    iterations: int
    exactly: Dict[int, float]
    at_least: Dict[int, float]
    average_correct: float
    expected_payout: float
    confidence_intervals: Optional[ConfidenceIntervals] = None

    def to_dict(self) -> Dict:
        correct = {}
        for k in sorted(self.exactly):
            correct[f"exactly_{k}"] = round(self.exactly[k], 6)
        for k in sorted(self.at_least):
            correct[f"at_least_{k}"] = round(self.at_least[k], 6)
        out = {
            "row_id": self.row_id,
            "iterations": self.iterations,
            "correct_results": correct,
            "average_correct": round(self.average_correct, 4),
            "expected_payout": round(self.expected_payout, 2),
        }
        if self.confidence_intervals is not None:
            out["confidence_intervals"] = self.confidence_intervals.to_dict()
        return out


@dataclass(frozen=True)
class SystemSimulationResult:
    """
    Outcome distribution of a whole system.

    ``hit_probability[k]`` is P(at least one row has k or more hits);
    ``expected_winning_rows[k]`` is the expected number of such rows.
    """

    iterations: int
    total_rows: int
    cost: float
    hit_probability: Dict[int, float]
    expected_winning_rows: Dict[int, float]
    average_correct: float
    best_row_average: float
    expected_payout: float
    roi: float = field(default=0.0)

    def to_dict(self) -> Dict:
        return {
            "iterations": self.iterations,
            "total_rows": self.total_rows,
            "cost": self.cost,
            "hit_probability": {str(k): round(v, 6) for k, v in self.hit_probability.items()},
            "expected_winning_rows": {
                str(k): round(v, 4) for k, v in self.expected_winning_rows.items()
            },
            "average_correct": round(self.average_correct, 4),
            "best_row_average": round(self.best_row_average, 4),
            "expected_payout": round(self.expected_payout, 2),
            "roi": round(self.roi, 4),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def validate_iterations(iterations: int) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise InvalidIterationsError(f"iterations must be an integer, got {iterations!r}.")
    if not (MIN_ITERATIONS <= iterations <= MAX_ITERATIONS):
        raise InvalidIterationsError(
            f"Iterations must be between {MIN_ITERATIONS:,} and {MAX_ITERATIONS:,}, "
            f"got {iterations:,}."
        )
    return int(iterations)


def validate_confidence_level(level: float) -> float:
    if not (0.0 < level < 1.0):
        raise InvalidIterationsError(f"confidence_level must be in (0, 1), got {level!r}.")
    return float(level)


def _cumulative(probabilities: Sequence[Probabilities]) -> np.ndarray:
    """(n, 2) array of [p_home, p_home + p_draw] after defensive renormalisation."""
    rows = []
    for probs in probabilities:
        p = ensure_normalized(probs)
        rows.append((p.home, p.home + p.draw))
    return np.asarray(rows, dtype=float).reshape(len(rows), 2)


def _draw_outcomes(rng: np.random.Generator, cum: np.ndarray, trials: int) -> np.ndarray:
    """(trials, n) matrix of realised outcome indices 0/1/2."""
    u = rng.random((trials, cum.shape[0]))
    return (u >= cum[:, 0]).astype(np.int8) + (u >= cum[:, 1]).astype(np.int8)


def _row_indices(row: RowLike) -> np.ndarray:
    if isinstance(row, GeneratedRow):
        outcomes = row.outcomes
    else:
        outcomes = [Outcome.parse(o) for o in row]
    return np.asarray([_OUTCOME_INDEX[o] for o in outcomes], dtype=np.int8)


def _percentile_bounds(samples: np.ndarray, level: float) -> ConfidenceInterval:
    ordered = np.sort(samples)
    b = len(ordered)
    alpha = 1.0 - level
    lower = min(int(math.floor(alpha / 2 * b)), b - 1)
    upper = min(int(math.floor((1 - alpha / 2) * b)), b - 1)
    return ConfidenceInterval(float(ordered[lower]), float(ordered[upper]))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SimulationEngine:
    """
    Parallel Monte Carlo evaluator.

    Args:
        workers: Threads to split trials across.  1 runs inline.
        seed: Root seed.  Every call spawns a fresh child from it, so a
            sequence of calls on a seeded engine is reproducible.
        payout: Payout step function.
        chunk_size: Trials per vectorised step.
    """

    def __init__(
        self,
        workers: int = DEFAULT_WORKERS,
        seed: Optional[int] = None,
        payout: Optional[PayoutTable] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if workers < 1:
            raise ValueError(f"workers must be ≥ 1, got {workers!r}.")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be ≥ 1, got {chunk_size!r}.")
        self.workers = workers
        self.payout = payout or PayoutTable()
        self.chunk_size = chunk_size
        self._seed_seq = np.random.SeedSequence(seed)

    # ------------------------------------------------------------------
    # Parallel reduction
    # ------------------------------------------------------------------

    def _run_parallel(
        self,
        kernel: Callable[[np.random.Generator, int], np.ndarray],
        trials: int,
        token: Optional[CancellationToken],
    ) -> np.ndarray:
        """
        Split ``trials`` across workers and sum the kernels' outputs.

        ``kernel(rng, n)`` simulates ``n`` trials and returns a 1-D array of
        sums.  Summation is commutative, so completion order is irrelevant.
        """
        n_workers = min(self.workers, trials)
        children = self._seed_seq.spawn(n_workers)
        base, extra = divmod(trials, n_workers)
        shares = [base + (1 if i < extra else 0) for i in range(n_workers)]

        def _worker(child: np.random.SeedSequence, share: int) -> np.ndarray:
            rng = np.random.default_rng(child)
            total = None
            done = 0
            while done < share:
                if token is not None:
                    token.check()
                step = min(self.chunk_size, share - done)
                partial = kernel(rng, step)
                total = partial if total is None else total + partial
                done += step
            return total

        if n_workers == 1:
            return _worker(children[0], shares[0])

        result = None
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(_worker, c, s) for c, s in zip(children, shares)]
            for future in as_completed(futures):
                partial = future.result()
                result = partial if result is None else result + partial
        return result

    # ------------------------------------------------------------------
    # Single rows
    # ------------------------------------------------------------------

    def simulate_row(
        self,
        row: RowLike,
        probabilities: Sequence[Probabilities],
        iterations: int = DEFAULT_ITERATIONS,
        with_confidence_intervals: bool = False,
        confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
        row_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> SimulationResult:
        """
        Distribution of the hit count for one row.

        Args:
            row: A ``GeneratedRow``, a sequence of outcomes or a symbol
                string such as ``"1X21X21X21X21"``.
            probabilities: One triple per match, in row order.
            iterations: Trials, in [1 000, 1 000 000].
            with_confidence_intervals: Also bootstrap intervals on the mean
                hit count and the expected payout.
            confidence_level: Interval coverage, in (0, 1).
            row_id: Label for the result.  Defaults to the row's own id.
            token: Cancellation token.

        Raises:
            InvalidIterationsError: For out-of-range iterations or level.
            SlateError: If the row and the probabilities differ in length.
            SimulationCancelledError: If ``token`` fires.
        """
        iterations = validate_iterations(iterations)
        if with_confidence_intervals:
            confidence_level = validate_confidence_level(confidence_level)
        picks = _row_indices(row)
        if len(picks) != len(probabilities):
            raise SlateError(
                f"Row has {len(picks)} outcomes but {len(probabilities)} matches were given."
            )
        if row_id is None:
            row_id = row.row_id if isinstance(row, GeneratedRow) else "row"

        cum = _cumulative(probabilities)
        n = len(picks)

        def kernel(rng: np.random.Generator, trials: int) -> np.ndarray:
            correct = (_draw_outcomes(rng, cum, trials) == picks).sum(axis=1)
            return np.bincount(correct, minlength=n + 1).astype(np.int64)

        started = time.perf_counter()
        tally = self._run_parallel(kernel, iterations, token)

        exact = tally / iterations
        levels = [k for k in PRIZE_LEVELS if k <= n]
        exactly = {k: float(exact[k]) for k in levels}
        at_least = {k: float(exact[k:].sum()) for k in levels}
        average = float(np.dot(np.arange(n + 1), tally) / iterations)
        payout = self.payout.expected_payout(exactly)

        intervals = None
        if with_confidence_intervals:
            intervals = self._bootstrap(picks, cum, confidence_level, token)

        logger.info(
            "Simulated row %s: %d trials in %.2fs, avg correct %.3f",
            row_id, iterations, time.perf_counter() - started, average,
        )
        return SimulationResult(
            row_id=row_id,
            iterations=iterations,
            exactly=exactly,
            at_least=at_least,
            average_correct=average,
            expected_payout=payout,
            confidence_intervals=intervals,
        )

    def simulate_rows(
        self,
        rows: Sequence[RowLike],
        probabilities: Sequence[Probabilities],
        iterations: int = DEFAULT_ITERATIONS,
        token: Optional[CancellationToken] = None,
    ) -> List[SimulationResult]:
        """``simulate_row`` for each row, ids ``row_0``, ``row_1``, ..."""
        validate_iterations(iterations)
        results = []
        for i, row in enumerate(rows):
            row_id = row.row_id if isinstance(row, GeneratedRow) else f"row_{i}"
            results.append(
                self.simulate_row(row, probabilities, iterations, row_id=row_id, token=token)
            )
        return results

    def _bootstrap(
        self,
        picks: np.ndarray,
        cum: np.ndarray,
        level: float,
        token: Optional[CancellationToken],
        replicates: int = BOOTSTRAP_REPLICATES,
        inner_trials: int = BOOTSTRAP_INNER_TRIALS,
    ) -> ConfidenceIntervals:
        """
        Percentile intervals from ``replicates`` independent small runs.

        Each replicate simulates ``inner_trials`` fresh trials and records its
        mean hit count and mean payout.  The sorted replicate values are read
        at ``floor(alpha/2 * B)`` and ``floor((1 - alpha/2) * B)``.
        """
        rng = np.random.default_rng(self._seed_seq.spawn(1)[0])
        batch = max(1, self.chunk_size // inner_trials)
        averages = np.empty(replicates)
        payouts = np.empty(replicates)

        done = 0
        while done < replicates:
            if token is not None:
                token.check()
            step = min(batch, replicates - done)
            realised = _draw_outcomes(rng, cum, step * inner_trials)
            correct = (realised == picks).sum(axis=1).reshape(step, inner_trials)
            averages[done:done + step] = correct.mean(axis=1)
            payouts[done:done + step] = self.payout.payout_array(correct).mean(axis=1)
            done += step

        return ConfidenceIntervals(
            level=level,
            average_correct=_percentile_bounds(averages, level),
            expected_payout=_percentile_bounds(payouts, level),
            replicates=replicates,
        )

    # ------------------------------------------------------------------
    # Whole systems
    # ------------------------------------------------------------------

    def simulate_system(
        self,
        plans: Sequence[MatchCoveragePlan],
        iterations: int = DEFAULT_ITERATIONS,
        cost_per_row: float = 1.0,
        token: Optional[CancellationToken] = None,
    ) -> SystemSimulationResult:
        """
        Evaluate every row of a coverage plan at once.

        Results are drawn from each plan's outcome model (the de-vigged
        market when known), never the risk-skewed triple.  Per trial, the
        number of rows with exactly k hits is computed by dynamic
        programming, so cost grows with the slate size, not the row count.

        Raises:
            InvalidIterationsError: For out-of-range iterations.
            SimulationCancelledError: If ``token`` fires.
        """
        iterations = validate_iterations(iterations)
        ordered = sorted(plans, key=lambda p: p.position)
        n = len(ordered)
        cum = _cumulative([p.outcome_model for p in ordered])
        covered = np.zeros((n, 3), dtype=np.int64)
        for i, plan in enumerate(ordered):
            for outcome in plan.outcomes:
                covered[i, _OUTCOME_INDEX[outcome]] = 1
        width = covered.sum(axis=1)
        total_rows = int(np.prod(width))
        levels = [k for k in PRIZE_LEVELS if k <= n]
        payout_by_k = np.asarray([self.payout.payout(k) for k in range(n + 1)])
        match_index = np.arange(n)

        # sums layout: [any_row_ge_k per level] [rows_ge_k per level]
        #              [hit-weighted row count] [best row hits] [payout]
        n_levels = len(levels)

        def kernel(rng: np.random.Generator, trials: int) -> np.ndarray:
            realised = _draw_outcomes(rng, cum, trials)
            hits = covered[match_index, realised]  # (trials, n)
            counts = np.zeros((trials, n + 1), dtype=np.int64)
            counts[:, 0] = 1
            for i in range(n):
                h = hits[:, i:i + 1]
                shifted = np.zeros_like(counts)
                shifted[:, 1:] = counts[:, :-1]
                counts = (width[i] - h) * counts + h * shifted

            ge = np.cumsum(counts[:, ::-1], axis=1)[:, ::-1]  # rows with >= k hits
            sums = np.empty(2 * n_levels + 3, dtype=float)
            for j, k in enumerate(levels):
                sums[j] = np.count_nonzero(ge[:, k])
                sums[n_levels + j] = ge[:, k].sum()
            sums[2 * n_levels] = (counts * np.arange(n + 1)).sum()
            sums[2 * n_levels + 1] = hits.sum()
            sums[2 * n_levels + 2] = (counts * payout_by_k).sum()
            return sums

        started = time.perf_counter()
        sums = self._run_parallel(kernel, iterations, token)

        hit_probability = {k: float(sums[j] / iterations) for j, k in enumerate(levels)}
        expected_rows = {k: float(sums[n_levels + j] / iterations) for j, k in enumerate(levels)}
        average_correct = float(sums[2 * n_levels] / (iterations * total_rows))
        best_row = float(sums[2 * n_levels + 1] / iterations)
        expected_payout = float(sums[2 * n_levels + 2] / iterations)
        cost = total_rows * cost_per_row
        roi = expected_payout / cost if cost > 0 else 0.0

        logger.info(
            "Simulated %d-row system: %d trials in %.2fs, P(>=10) %.4f, ROI %.3f",
            total_rows, iterations, time.perf_counter() - started,
            hit_probability.get(10, 0.0), roi,
        )
        return SystemSimulationResult(
            iterations=iterations,
            total_rows=total_rows,
            cost=cost,
            hit_probability=hit_probability,
            expected_winning_rows=expected_rows,
            average_correct=average_correct,
            best_row_average=best_row,
            expected_payout=expected_payout,
            roi=roi,
        )
