"""Validation and runtime errors raised by the engine.

Every error subclasses :class:`StryktipsError`, which itself subclasses
``ValueError`` so callers that only care about "bad input" can keep catching
``ValueError``.  The HTTP layer maps each subclass to a status code.
"""


class StryktipsError(ValueError):
    """Base class for all engine errors."""


class InvalidOddsError(StryktipsError):
    """Decimal odds are not finite or not strictly greater than 1.0."""


class UnknownRiskProfileError(StryktipsError):
    """Risk profile is not one of ``safe``, ``balanced``, ``risky``."""


class ConfigurationMismatchError(StryktipsError):
    """System distribution counts are negative or do not sum to the slate size."""


class SlateError(StryktipsError):
    """Match slate has the wrong length or duplicate match ids."""


class InvalidIterationsError(StryktipsError):
    """Simulation parameters are outside their allowed bounds."""


class SystemTooLargeError(StryktipsError):
    """Requested system would expand to more rows than the operational ceiling."""

    def __init__(self, total_rows: int, max_rows: int):
        self.total_rows = total_rows
        self.max_rows = max_rows
        super().__init__(
            f"System expands to {total_rows} rows which exceeds the ceiling of "
            f"{max_rows}. Reduce halves/fulls or raise MAX_SYSTEM_ROWS."
        )


class SimulationCancelledError(StryktipsError):
    """Simulation was cancelled by the caller or ran past its deadline."""
