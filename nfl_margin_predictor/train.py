# file: nfl_margin_predictor/train.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import dump
from sklearn.base import BaseEstimator
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import ExtraTreesRegressor, RandomForestRegressor
from sklearn.linear_model import LinearRegression
from sklearn.metrics import root_mean_squared_error
from sklearn.model_selection import GridSearchCV, RepeatedKFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import LinearSVR

from .data_models import ModelCard, TrainConfig
from .evaluate import pick_outcomes, pick_stats, smoothness, win_rate
from .features import feature_targets, load_games, sanity_grid
from .utils import FEATURES, season_dir

logger = logging.getLogger(__name__)

BUNDLE_FILE = "trained-models.joblib"
CARDS_FILE = "model_cards.json"
SUMMARY_FILE = "training_summary.csv"
SANITY_FILE = "sanity-grid.csv"

# Forest splitting rules: bootstrap CART splits vs. randomized cut points
SPLIT_RULES = {
    "variance": RandomForestRegressor,
    "extratrees": ExtraTreesRegressor,
}


def week_strata(weeks: pd.Series, min_size: int = 2) -> pd.Series:
    """
    Stratum label per game: its week, except that weeks too small to split
    (the Super Bowl, thin playoff rounds) share one combined playoff stratum.
    A combined stratum that is still too small joins the nearest full week.
    """
    counts = weeks.value_counts()
    small = counts.index[counts < min_size]
    strata = weeks.copy()
    if small.empty:
        return strata
    mask = weeks.isin(small)
    if mask.sum() >= min_size:
        strata[mask] = -1
    else:
        full = counts.index[counts >= min_size].to_numpy()
        strata[mask] = full[np.abs(full - small[0]).argmin()]
    return strata


def stratified_split(
    df: pd.DataFrame, test_size: float, random_state: int
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Train/test split with every week represented in proportion in both parts."""
    train_df, test_df = train_test_split(
        df, test_size=test_size, stratify=week_strata(df["week"]), random_state=random_state
    )
    return train_df.sort_index(), test_df.sort_index()


def _linear(cols: Sequence[str]) -> Pipeline:
    # Column selection lives inside the pipeline so every model takes FEATURES
    select = ColumnTransformer([("features", "passthrough", list(cols))], remainder="drop")
    return Pipeline([("select", select), ("lm", LinearRegression())])


def model_families(config: TrainConfig) -> Dict[str, Tuple[Pipeline, Dict[str, list]]]:
    """
    Candidate model families and their hyperparameter grids.
    Grid values are listed default first so exact CV ties resolve to them. For the
    forest "default" means ranger's regression defaults (variance splits, one
    feature per split, leaf size 5); for the SVR it is LIBLINEAR's C=1, epsilon=0.
    """
    forests = [
        SPLIT_RULES[rule](n_estimators=config.n_trees, random_state=config.random_state)
        for rule in config.rf_split_rules
    ]
    epsilons = config.svr_epsilon if config.tune_epsilon else [0.0]
    return {
        "Spread LM": (_linear(["final_spread"]), {"lm__fit_intercept": [True]}),
        "DAVE LM": (_linear(["dave_diff"]), {"lm__fit_intercept": [True]}),
        "DAVE + Spread LM": (_linear(FEATURES), {"lm__fit_intercept": [True]}),
        "DAVE + Spread RF": (
            Pipeline([("forest", forests[0])]),
            {
                "forest": forests,
                "forest__max_features": config.rf_max_features,
                "forest__min_samples_leaf": config.rf_min_samples_leaf,
            },
        ),
        "DAVE + Spread SVR": (
            Pipeline(
                [
                    ("scale", StandardScaler()),
                    ("svr", LinearSVR(max_iter=config.svr_max_iter, random_state=config.random_state)),
                ]
            ),
            {"svr__C": config.svr_c, "svr__epsilon": epsilons},
        ),
    }


def tune_family(
    pipeline: Pipeline,
    grid: Dict[str, list],
    X: pd.DataFrame,
    y: pd.Series,
    config: TrainConfig,
) -> GridSearchCV:
    """Repeated k-fold grid search on RMSE; refits the winner on all of X."""
    cv = RepeatedKFold(
        n_splits=config.n_splits, n_repeats=config.n_repeats, random_state=config.random_state
    )
    search = GridSearchCV(
        pipeline,
        grid,
        cv=cv,
        scoring="neg_root_mean_squared_error",
        refit=True,
    )
    search.fit(X, y)
    return search


def describe_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-friendly view of best params (estimator choices become rule names)."""
    out: Dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, BaseEstimator):
            rule = next((r for r, cls in SPLIT_RULES.items() if type(value) is cls), type(value).__name__)
            out[key] = rule
        elif isinstance(value, np.generic):
            out[key] = value.item()
        else:
            out[key] = value
    return out


def select_models(
    models: Dict[str, Any],
    summary: pd.DataFrame,
    keep: Optional[Iterable[str]] = None,
    min_win_rate: Optional[float] = None,
) -> Dict[str, Any]:
    """Models to persist: an explicit name list, a test win-rate floor, or everything."""
    if keep:
        keep = list(keep)
        unknown = [k for k in keep if k not in models]
        if unknown:
            raise ValueError(f"Unknown model names: {unknown} (trained: {list(models)})")
        return {k: models[k] for k in keep}
    if min_win_rate is not None:
        rates = summary.set_index("model")["win_rate"]
        kept = {k: m for k, m in models.items() if rates.get(k, np.nan) >= min_win_rate}
        if not kept:
            raise ValueError(
                f"No model reached a test win rate of {min_win_rate:.3f} "
                f"(best: {rates.max():.3f}); nothing to persist"
            )
        return kept
    return dict(models)


def save_bundle(
    models: Dict[str, Any],
    cards: List[ModelCard],
    out_dir: Path,
) -> Path:
    """Persist the named-model bundle and the cards of the models it holds."""
    out_dir.mkdir(parents=True, exist_ok=True)
    bundle_path = out_dir / BUNDLE_FILE
    dump(models, bundle_path)
    kept_cards = [c.model_dump(mode="json") for c in cards if c.name in models]
    (out_dir / CARDS_FILE).write_text(json.dumps(kept_cards, indent=2))
    logger.info("Saved %d models to %s", len(models), bundle_path)
    return bundle_path


def train_models(
    sources: Iterable[str],
    models_dir: str,
    season: str,
    config: TrainConfig = TrainConfig(),
    keep: Optional[Iterable[str]] = None,
    min_win_rate: Optional[float] = None,
) -> pd.DataFrame:
    """Tune, fit and evaluate every model family; persist the selected bundle."""
    out_dir = season_dir(models_dir, season)
    out_dir.mkdir(parents=True, exist_ok=True)

    games = load_games(sources)
    train_df, test_df = stratified_split(games, config.test_size, config.random_state)
    X_tr, y_tr = feature_targets(train_df)
    X_te, y_te = feature_targets(test_df)
    grid = sanity_grid(config.spread_range, config.dave_range, config.grid_points)
    logger.info("Training on %d games, holding out %d", len(train_df), len(test_df))

    models: Dict[str, Any] = {}
    cards: List[ModelCard] = []
    results = []
    sanity_frames = []

    for name, (pipeline, param_grid) in model_families(config).items():
        search = tune_family(pipeline, param_grid, X_tr, y_tr, config)
        model = search.best_estimator_
        params = describe_params(search.best_params_)
        cv_rmse = float(-search.best_score_)
        logger.info("%s: best params %s (CV RMSE %.3f)", name, params, cv_rmse)

        # Training fit: forests are expected to look near-perfect here
        tr_pred = model.predict(X_tr)
        train_rmse = float(root_mean_squared_error(y_tr, tr_pred))
        train_wins = win_rate(pick_outcomes(train_df, tr_pred)["win"])

        te_pred = model.predict(X_te)
        test_rmse = float(root_mean_squared_error(y_te, te_pred))
        resid_std = float(np.std(y_te - te_pred, ddof=1)) if len(y_te) > 1 else test_rmse
        stats = pick_stats(test_df, te_pred)

        grid_pred = model.predict(grid)
        shape = smoothness(grid_pred, config.grid_points)
        sanity_frames.append(grid.assign(model=name, predicted_margin=grid_pred))

        models[name] = model
        cards.append(
            ModelCard(
                name=name,
                features=list(FEATURES),
                best_params=params,
                cv_rmse=cv_rmse,
                residual_std=resid_std,
                train_rows=int(len(X_tr)),
                test_rows=int(len(X_te)),
                notes=f"test RMSE={test_rmse:.2f}, win rate={stats['win_rate']:.3f}",
            )
        )
        results.append(
            {
                "model": name,
                "cv_rmse": cv_rmse,
                "train_rmse": train_rmse,
                "test_rmse": test_rmse,
                "train_win_rate": train_wins,
                **stats,
                **shape,
                "best_params": json.dumps(params),
            }
        )

    summary = pd.DataFrame(results)
    pd.concat(sanity_frames, ignore_index=True).to_csv(out_dir / SANITY_FILE, index=False)
    try:
        selected = select_models(models, summary, keep=keep, min_win_rate=min_win_rate)
    except ValueError:
        # Diagnostics stay on disk even when nothing is persisted
        summary.assign(kept=False).to_csv(out_dir / SUMMARY_FILE, index=False)
        raise
    summary["kept"] = summary["model"].isin(list(selected))

    save_bundle(selected, cards, out_dir)
    summary.to_csv(out_dir / SUMMARY_FILE, index=False)
    return summary


# Optional: allow `python -m nfl_margin_predictor.train --season 2023 --data games.csv`
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--season", required=True)
    parser.add_argument("--data", action="append", required=True)
    parser.add_argument("--models-dir", default="models")
    parser.add_argument("--test-size", type=float, default=0.2)
    parser.add_argument("--random-state", type=int, default=42)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    cfg = TrainConfig(test_size=args.test_size, random_state=args.random_state)
    out = train_models(args.data, args.models_dir, args.season, cfg)
    print(out.to_string(index=False))
