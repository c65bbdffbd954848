# file: nfl_margin_predictor/predict.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from joblib import load
from scipy.stats import norm

from .data_models import ModelCard
from .features import filter_week, feature_targets, normalize_games
from .train import BUNDLE_FILE, CARDS_FILE
from .utils import read_table, season_dir, sheet_for_season

logger = logging.getLogger(__name__)

# Typical spread of NFL margins around the closing line
DEFAULT_SIGMA = 13.5


def load_bundle(models_dir: str | Path, season: str) -> Dict[str, Any]:
    """Load the named-model bundle trained for a season."""
    path = season_dir(models_dir, season) / BUNDLE_FILE
    if not path.exists():
        raise FileNotFoundError(f"No trained models for season '{season}': {path}")
    return load(path)


def load_cards(models_dir: str | Path, season: str) -> Dict[str, ModelCard]:
    """Model cards keyed by model name; empty if none were written."""
    path = season_dir(models_dir, season) / CARDS_FILE
    if not path.exists():
        return {}
    return {c["name"]: ModelCard(**c) for c in json.loads(path.read_text())}


def load_week_games(season: str, week: int, source: Optional[str] = None) -> pd.DataFrame:
    """
    This week's games with a closing line, read from the season's sheet
    (or an explicit CSV path / URL / sheet id).
    """
    raw = read_table(source or sheet_for_season(season))
    games = normalize_games(raw, name=f"season {season}")
    week_games = filter_week(games, week)
    if week_games.empty:
        raise LookupError(f"No games with a closing line for season '{season}', week {week}")
    return week_games


def predict_games(models: Dict[str, Any], games: pd.DataFrame) -> pd.DataFrame:
    """One row per game: Road, Home, then each model's predicted home margin."""
    X, _ = feature_targets(games)
    preds = pd.DataFrame({"Road": games["road"].to_numpy(), "Home": games["home"].to_numpy()})
    for name, model in models.items():
        preds[name] = np.round(model.predict(X), 2)
    return preds


def default_output_path(models_dir: str | Path, season: str, week: int) -> Path:
    return season_dir(models_dir, season) / "weekly-predictions" / f"week-{week}.csv"


def predict_week(
    season: str,
    week: int,
    models_dir: str = "models",
    output_path: Optional[str] = None,
    source: Optional[str] = None,
) -> pd.DataFrame:
    """
    Apply a season's trained models to one week of games and write the CSV.
    Returns the predictions DataFrame.
    """
    models = load_bundle(models_dir, season)
    games = load_week_games(season, week, source)
    preds = predict_games(models, games)

    out = Path(output_path) if output_path else default_output_path(models_dir, season, week)
    out.parent.mkdir(parents=True, exist_ok=True)
    preds.to_csv(out, index=False)
    logger.info("Predictions for %d games stored at %s", len(preds), out)
    return preds


def cover_probabilities(
    preds: pd.DataFrame,
    games: pd.DataFrame,
    cards: Dict[str, ModelCard],
) -> pd.DataFrame:
    """
    P(home covers the pool spread) per model, treating the realized margin as
    normal around the prediction with the model's test residual std.
    """
    out = preds[["Road", "Home"]].copy()
    out["Pool Spread"] = games["pool_spread"].to_numpy(dtype=float)
    model_cols: List[str] = [c for c in preds.columns if c not in {"Road", "Home"}]
    for name in model_cols:
        card = cards.get(name)
        sigma = card.residual_std if card is not None else DEFAULT_SIGMA
        # guard against sigma=0
        sigma = sigma if sigma > 1e-6 else 1.0
        z = (-out["Pool Spread"] - preds[name].astype(float)) / sigma
        out[f"P(home covers) {name}"] = np.round((1 - norm.cdf(z)).clip(0, 1), 3)
    return out


def line_probability(
    season: str,
    week: int,
    models_dir: str = "models",
    output_path: Optional[str] = None,
    source: Optional[str] = None,
) -> pd.DataFrame:
    """Cover probabilities for a week, optionally written out."""
    models = load_bundle(models_dir, season)
    games = load_week_games(season, week, source)
    df = cover_probabilities(predict_games(models, games), games, load_cards(models_dir, season))

    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False)

    return df
