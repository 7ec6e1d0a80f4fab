"""Core mathematics and configuration for the Stryktips system engine.

This package contains pure building blocks:

- ``domain``           outcomes, probability triples, odds and row value objects
- ``errors``           the ``StryktipsError`` hierarchy
- ``odds_math``        vig removal, risk-profile skew, normalised entropy
- ``kelly``            Kelly criterion sizing, bet confidence, value score
- ``system_config``    coverage distributions, presets and the size catalogue
- ``signal_interface`` DTO and ABC for swappable intelligence providers

Nothing in this package imports from ``stryktips.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
