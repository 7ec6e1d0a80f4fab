"""
FastAPI application for the Stryktips system engine
Generates coverage systems, single rows and Monte Carlo evaluations
"""

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import os

import numpy as np
from dotenv import load_dotenv

from stryktips import __version__
from stryktips.core.errors import (
    SimulationCancelledError,
    StryktipsError,
    SystemTooLargeError,
)
from stryktips.core.odds_math import normalize_odds
from stryktips.core.system_config import PRESETS, SLATE_SIZE, available_sizes
from stryktips.schemas import (
    PresetResponse,
    RowGenerateRequest,
    SimulateRequest,
    SizesResponse,
    SystemGenerateRequest,
    SystemSimulateRequest,
)
from stryktips.services.row_generator import RowGenerator, diversity_score
from stryktips.services.signals import StaticSignalProvider
from stryktips.services.simulation import CancellationToken, SimulationEngine
from stryktips.services.system_generator import SystemGenerator, validate_slate
from stryktips.services.value_analysis import ValueAnalyzer

load_dotenv()

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Runtime configuration
DEFAULT_ITERATIONS = int(os.getenv("DEFAULT_ITERATIONS", "100000"))
MAX_SYSTEM_ROWS = int(os.getenv("MAX_SYSTEM_ROWS", "2000"))
SIM_WORKERS = int(os.getenv("SIM_WORKERS", "4"))
DEFAULT_BANKROLL = float(os.getenv("DEFAULT_BANKROLL", "1000"))
_deadline = os.getenv("SIM_DEADLINE_SECONDS")
SIM_DEADLINE_SECONDS: Optional[float] = float(_deadline) if _deadline else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info(
        "Starting Stryktips engine (max rows %d, %d simulation workers, %d default iterations)",
        MAX_SYSTEM_ROWS, SIM_WORKERS, DEFAULT_ITERATIONS,
    )
    yield
    logger.info("Shutting down Stryktips engine")


app = FastAPI(
    title="Stryktips System Engine",
    description="Probability, coverage and Monte Carlo engine for the 13-match coupon",
    version=__version__,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HELPERS
# ============================================================================

def _http_error(exc: StryktipsError) -> HTTPException:
    """Map an engine validation error to its HTTP status."""
    if isinstance(exc, SystemTooLargeError):
        status = 413
    elif isinstance(exc, SimulationCancelledError):
        status = 408
    else:
        status = 400
    logger.warning("Rejected request (%d): %s", status, exc)
    return HTTPException(status_code=status, detail=str(exc))


def _token() -> Optional[CancellationToken]:
    if SIM_DEADLINE_SECONDS is None:
        return None
    return CancellationToken(deadline_seconds=SIM_DEADLINE_SECONDS)


def _generate(req: SystemGenerateRequest):
    generator = SystemGenerator(
        max_rows=MAX_SYSTEM_ROWS,
        value_analyzer=ValueAnalyzer(bankroll=req.bankroll or DEFAULT_BANKROLL),
    )
    provider = StaticSignalProvider(req.domain_signals()) if req.signals else None
    return generator.generate(
        req.domain_matches(),
        req.configuration(),
        req.risk_profile,
        rng=np.random.default_rng(req.seed),
        signal_provider=provider,
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Stryktips System Engine",
        "version": __version__,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "max_system_rows": MAX_SYSTEM_ROWS,
        "simulation_workers": SIM_WORKERS,
    }


# ============================================================================
# SYSTEMS
# ============================================================================

@app.get("/api/systems/presets", response_model=list[PresetResponse])
async def list_presets():
    """The named system shapes, smallest first."""
    presets = sorted(PRESETS.items(), key=lambda item: item[1].total_rows)
    return [
        PresetResponse(
            name=name,
            total_rows=cfg.total_rows,
            cost=cfg.cost,
            halves=cfg.halves,
            fulls=cfg.fulls,
            singles=cfg.singles,
            description=cfg.description,
        )
        for name, cfg in presets
    ]


@app.get("/api/systems/sizes", response_model=SizesResponse)
async def list_sizes(max_rows: int = Query(1000, ge=1, le=100_000)):
    """Every distinct system row count up to max_rows."""
    return SizesResponse(max_rows=max_rows, sizes=available_sizes(max_rows))


@app.post("/api/systems/generate")
def generate_system(req: SystemGenerateRequest):
    """Allocate coverage for the slate and expand it into rows."""
    try:
        system = _generate(req)
    except StryktipsError as exc:
        raise _http_error(exc)
    return system.to_dict(include_rows=req.include_rows)


@app.post("/api/systems/simulate")
def simulate_system(req: SystemSimulateRequest):
    """Generate a system, then evaluate all of its rows at once."""
    iterations = req.iterations or DEFAULT_ITERATIONS
    try:
        system = _generate(req)
        engine = SimulationEngine(workers=SIM_WORKERS, seed=req.seed)
        result = engine.simulate_system(
            system.plans,
            iterations=iterations,
            cost_per_row=system.configuration.cost_per_row,
            token=_token(),
        )
    except StryktipsError as exc:
        raise _http_error(exc)
    return {
        "system": system.to_dict(include_rows=req.include_rows),
        "simulation": result.to_dict(),
    }


# ============================================================================
# ROWS
# ============================================================================

@app.post("/api/rows/generate")
def generate_rows(req: RowGenerateRequest):
    """Draw independent single rows under the requested strategy and filters."""
    try:
        generator = RowGenerator(
            req.domain_matches(),
            profile=req.risk_profile,
            strategy=req.row_strategy(),
            filters=req.filters.to_domain() if req.filters is not None else None,
            rng=np.random.default_rng(req.seed),
        )
        rows = generator.generate_rows(req.num_rows)
    except StryktipsError as exc:
        raise _http_error(exc)
    return {
        "strategy": generator.strategy.value,
        "risk_profile": generator.profile.value,
        "requested": req.num_rows,
        "generated": len(rows),
        "diversity": round(diversity_score(rows), 4),
        "rows": [r.to_dict() for r in rows],
    }


# ============================================================================
# SIMULATION
# ============================================================================

@app.post("/api/simulate")
def simulate_rows(req: SimulateRequest):
    """
    Monte Carlo evaluation of one or more rows.

    Confidence intervals are only computed when a single row is sent.
    """
    iterations = req.iterations or DEFAULT_ITERATIONS
    try:
        matches = req.domain_matches()
        validate_slate(matches, SLATE_SIZE)
        probabilities = [normalize_odds(m) for m in matches]
        engine = SimulationEngine(workers=SIM_WORKERS, seed=req.seed)
        rows = req.domain_rows()
        if len(rows) == 1:
            results = [
                engine.simulate_row(
                    rows[0],
                    probabilities,
                    iterations=iterations,
                    with_confidence_intervals=req.with_confidence_intervals,
                    confidence_level=req.confidence_level,
                    row_id="row_0",
                    token=_token(),
                )
            ]
        else:
            results = engine.simulate_rows(rows, probabilities, iterations, token=_token())
    except StryktipsError as exc:
        raise _http_error(exc)
    return {"iterations": iterations, "results": [r.to_dict() for r in results]}


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
