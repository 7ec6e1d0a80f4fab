"""Shared fixtures: a realistic 13-match Stryktipset slate."""

import pytest

from stryktips.core.domain import MatchOdds

SLATE_ODDS = [
    ("Arsenal", "Chelsea", 1.45, 4.50, 7.00),
    ("Everton", "Fulham", 2.10, 3.40, 3.50),
    ("Brentford", "Wolves", 2.60, 3.20, 2.80),
    ("Liverpool", "Burnley", 1.80, 3.60, 4.40),
    ("Luton", "Newcastle", 3.10, 3.30, 2.35),
    ("Man City", "Sheffield Utd", 1.25, 6.00, 11.00),
    ("Bournemouth", "Brighton", 2.40, 3.10, 3.15),
    ("Nottm Forest", "Tottenham", 5.50, 4.00, 1.60),
    ("Aston Villa", "West Ham", 1.95, 3.50, 3.90),
    ("Leeds", "Norwich", 2.75, 3.25, 2.60),
    ("Leicester", "Hull", 1.60, 3.90, 5.75),
    ("Coventry", "Stoke", 2.20, 3.30, 3.30),
    ("Millwall", "Ipswich", 3.60, 3.40, 2.05),
]


@pytest.fixture
def slate():
    return [
        MatchOdds(f"m{i + 1}", home, draw, away, home_team=h, away_team=a)
        for i, (h, a, home, draw, away) in enumerate(SLATE_ODDS)
    ]


@pytest.fixture
def slate_payload():
    """The same slate as JSON request bodies."""
    return [
        {"match_id": f"m{i + 1}", "home": home, "draw": draw, "away": away,
         "home_team": h, "away_team": a}
        for i, (h, a, home, draw, away) in enumerate(SLATE_ODDS)
    ]
