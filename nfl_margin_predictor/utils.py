# file: nfl_margin_predictor/utils.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

# Public Google Sheet per season with that season's games (current week included)
SEASON_SHEETS: Dict[str, str] = {
    "2023": "1dVnTsDZvxPkLAsYW6SPb1tOTNHe2bxtRAAwpPIAYwj0",
}

SHEET_CSV_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv"

# Sheet headers → record fields
COLUMN_MAP: Dict[str, str] = {
    "Week": "week",
    "Road": "road",
    "Home": "home",
    "Pool Spread": "pool_spread",
    "Final Betting Line": "final_spread",
    "DAVE Differential": "dave_diff",
    "Home Margin": "actual_margin",
}

# Predictors shared by every model in a bundle
FEATURES: List[str] = ["final_spread", "dave_diff"]
TARGET = "actual_margin"

# Common franchise aliases → current abbreviations
TEAM_ALIASES = {
    "JAX": "JAC",
    "WSH": "WAS",
    "LA": "LAR",
}


def normalize_team(team: Optional[str]) -> Optional[str]:
    """Uppercase + alias map; returns None for missing."""
    if team is None or (isinstance(team, float) and pd.isna(team)):
        return None
    t = str(team).strip().upper()
    return TEAM_ALIASES.get(t, t)


def ensure_columns(df: pd.DataFrame, cols: List[str], name: str) -> None:
    """Raise with a clear message if required columns are missing."""
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{name} missing columns: {missing}")


def sheet_for_season(season: str) -> str:
    """Sheet id for a season; unknown seasons are a configuration error."""
    season = str(season)
    if season not in SEASON_SHEETS:
        raise KeyError(f"No sheet configured for season '{season}' (known: {sorted(SEASON_SHEETS)})")
    return SEASON_SHEETS[season]


def source_location(source: str) -> str:
    """
    Resolve a table source to something pandas can read.
    Local paths and URLs pass through; anything else is treated as a sheet id.
    """
    if source.startswith(("http://", "https://")) or Path(source).exists():
        return source
    return SHEET_CSV_URL.format(sheet_id=source)


def read_table(source: str) -> pd.DataFrame:
    """Read a raw games table from a CSV path, URL, or public sheet id."""
    return pd.read_csv(source_location(source))


def season_dir(models_dir: str | Path, season: str) -> Path:
    """Per-season artifact folder: <models_dir>/<season>."""
    return Path(models_dir) / str(season)
