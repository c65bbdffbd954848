# file: nfl_margin_predictor/evaluate.py
"""
Pick-accuracy statistics and qualitative sanity checks for margin models.

Conventions: spreads are home lines (negative = home favored) and margins
are home minus road, so the home side covers the pool spread when
``margin + pool_spread > 0``.
"""
from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd


def pick_outcomes(games: pd.DataFrame, predicted_margin: np.ndarray) -> pd.DataFrame:
    """
    Per-game picks implied by a model against the stale pool spread.

    Columns: pick_home, win (1.0 / 0.0, NaN on a push), favorite_pick,
    follows_movement.
    """
    pool = games["pool_spread"].to_numpy(dtype=float)
    final = games["final_spread"].to_numpy(dtype=float)
    pred = np.asarray(predicted_margin, dtype=float)

    pick_home = (pred + pool) > 0
    out = pd.DataFrame({"pick_home": pick_home}, index=games.index)

    if "actual_margin" in games.columns:
        cover = games["actual_margin"].to_numpy(dtype=float) + pool
        win = np.where(pick_home, cover > 0, cover < 0).astype(float)
        win[(cover == 0) | np.isnan(cover)] = np.nan
        out["win"] = win
    else:
        out["win"] = np.nan

    home_fav = pool < 0
    road_fav = pool > 0
    out["favorite_pick"] = (pick_home & home_fav) | (~pick_home & road_fav)

    # Line moving toward the home side makes the closing spread smaller
    movement = final - pool
    out["follows_movement"] = (pick_home & (movement < 0)) | (~pick_home & (movement > 0))
    return out


def win_rate(wins: pd.Series) -> float:
    """Share of decided picks won; NaN when nothing is left to score."""
    decided = wins.dropna()
    if decided.empty:
        return float("nan")
    return float(decided.mean())


def pick_stats(games: pd.DataFrame, predicted_margin: np.ndarray) -> Dict[str, float]:
    """Overall and filtered win rates for one model on labeled games."""
    picks = pick_outcomes(games, predicted_margin)
    return {
        "win_rate": win_rate(picks["win"]),
        "home_win_rate": win_rate(picks.loc[picks["pick_home"], "win"]),
        "favorite_win_rate": win_rate(picks.loc[picks["favorite_pick"], "win"]),
        "movement_win_rate": win_rate(picks.loc[picks["follows_movement"], "win"]),
        "n_picks": int(picks["win"].notna().sum()),
    }


def smoothness(predictions: np.ndarray, points: int, tol: float = 1e-9) -> Dict[str, float]:
    """
    Shape checks over a ``points x points`` sanity grid (spread on axis 0,
    rating gap on axis 1).

    roughness: mean absolute second difference; spread_monotone: share of
    steps where the margin does not rise as the spread grows; dave_monotone:
    share of steps where the margin does not fall as the rating gap grows.
    """
    z = np.asarray(predictions, dtype=float).reshape(points, points)
    second = np.concatenate(
        [np.abs(np.diff(z, n=2, axis=0)).ravel(), np.abs(np.diff(z, n=2, axis=1)).ravel()]
    )
    d_spread = np.diff(z, axis=0)
    d_dave = np.diff(z, axis=1)
    return {
        "roughness": float(second.mean()) if second.size else 0.0,
        "spread_monotone": float((d_spread <= tol).mean()),
        "dave_monotone": float((d_dave >= -tol).mean()),
    }
