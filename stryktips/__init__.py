"""Stryktips system engine: odds to coverage plan to rows to simulated returns."""

__version__ = "1.0.0"
