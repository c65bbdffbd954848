# file: nfl_margin_predictor/features.py
from __future__ import annotations

from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd

from .utils import COLUMN_MAP, FEATURES, TARGET, ensure_columns, normalize_team, read_table

NUMERIC_COLS: List[str] = ["week", "pool_spread", "final_spread", "dave_diff", TARGET]


def _numericify_cols(df: pd.DataFrame, cols: List[str]) -> None:
    """In-place numeric conversion for optional columns; non-numeric → NaN."""
    for c in cols:
        if c in df.columns:
            df[c] = pd.to_numeric(df[c], errors="coerce")


def normalize_games(raw: pd.DataFrame, name: str = "games") -> pd.DataFrame:
    """Rename sheet headers to record fields and coerce types."""
    df = raw.rename(columns=COLUMN_MAP)
    ensure_columns(df, ["week", "road", "home", "pool_spread", "final_spread", "dave_diff"], name)
    df["road"] = df["road"].map(normalize_team)
    df["home"] = df["home"].map(normalize_team)
    if TARGET not in df.columns:
        df[TARGET] = np.nan
    _numericify_cols(df, NUMERIC_COLS)
    return df


def load_games(sources: Iterable[str]) -> pd.DataFrame:
    """
    Read historical labeled games from one or more tables and keep only
    complete rows (every feature plus the realized margin).
    """
    frames = [normalize_games(read_table(s), name=s) for s in sources]
    if not frames:
        raise ValueError("At least one games source is required.")
    df = pd.concat(frames, ignore_index=True)
    df = df.dropna(subset=["week", "pool_spread", *FEATURES, TARGET])
    df["week"] = df["week"].astype(int)
    return df.reset_index(drop=True)


def filter_week(df: pd.DataFrame, week: int) -> pd.DataFrame:
    """Games for one week that already have a closing line."""
    out = df[(df["week"] == week) & df["final_spread"].notna()]
    return out.reset_index(drop=True)


def feature_targets(df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
    """Return feature matrix X and home margin y."""
    X = df.reindex(columns=FEATURES).astype(float)
    y = df[TARGET].astype(float)
    return X, y


def sanity_grid(
    spread_range: Tuple[float, float],
    dave_range: Tuple[float, float],
    points: int,
) -> pd.DataFrame:
    """Synthetic feature mesh spanning plausible spreads and rating gaps."""
    spreads = np.linspace(spread_range[0], spread_range[1], points)
    daves = np.linspace(dave_range[0], dave_range[1], points)
    s, d = np.meshgrid(spreads, daves, indexing="ij")
    return pd.DataFrame({"final_spread": s.ravel(), "dave_diff": d.ravel()})
