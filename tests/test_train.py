import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from joblib import load
from sklearn.base import clone
from sklearn.model_selection import ParameterGrid, RepeatedKFold, cross_val_score

from nfl_margin_predictor.features import feature_targets, normalize_games
from nfl_margin_predictor.train import (
    BUNDLE_FILE,
    CARDS_FILE,
    SANITY_FILE,
    SUMMARY_FILE,
    _linear,
    describe_params,
    model_families,
    save_bundle,
    select_models,
    stratified_split,
    tune_family,
    train_models,
    week_strata,
)


def test_stratified_split_preserves_week_shares(mock_games_data):
    games = normalize_games(mock_games_data)
    train_df, test_df = stratified_split(games, test_size=0.2, random_state=7)

    assert len(train_df) + len(test_df) == len(games)
    assert set(train_df.index).isdisjoint(test_df.index)

    overall = games["week"].value_counts(normalize=True)
    for part in (train_df, test_df):
        shares = part["week"].value_counts(normalize=True)
        assert ((shares - overall).abs() < 0.02).all()


def test_stratified_split_seed_is_explicit(mock_games_data):
    games = normalize_games(mock_games_data)
    a, _ = stratified_split(games, 0.2, random_state=1)
    b, _ = stratified_split(games, 0.2, random_state=1)
    c, _ = stratified_split(games, 0.2, random_state=2)
    assert a.index.equals(b.index)
    assert not a.index.equals(c.index)


def test_week_strata_folds_undersized_weeks():
    weeks = pd.Series([1, 1, 1, 2, 2, 21, 21, 22])
    # A lone Super Bowl joins the nearest full week
    assert week_strata(weeks).tolist() == [1, 1, 1, 2, 2, 21, 21, 21]

    weeks = pd.Series([1, 1, 1, 19, 20, 21, 22])
    strata = week_strata(weeks)
    assert strata.tolist()[:3] == [1, 1, 1]
    assert strata.iloc[3:].nunique() == 1
    assert (strata.value_counts() >= 2).all()


def test_stratified_split_handles_playoff_weeks(playoff_games_data):
    games = normalize_games(playoff_games_data)
    train_df, test_df = stratified_split(games, test_size=0.2, random_state=42)

    assert len(train_df) + len(test_df) == len(games)
    assert 22 in set(train_df["week"]) | set(test_df["week"])
    regular = games["week"] <= 18
    overall = games.loc[regular, "week"].value_counts() / len(games)
    for part in (train_df, test_df):
        shares = part.loc[part["week"] <= 18, "week"].value_counts() / len(part)
        assert ((shares - overall).abs() < 0.02).all()


def test_linear_fit_recovers_line():
    rng = np.random.default_rng(0)
    x = rng.uniform(-10, 10, 50)
    X = pd.DataFrame({"final_spread": x, "dave_diff": rng.normal(0, 20, 50)})
    model = _linear(["final_spread"]).fit(X, 2 * x + 3)

    held_out = pd.DataFrame({"final_spread": [-12.5, 0.0, 4.25, 15.0], "dave_diff": [99.0, -5.0, 0.0, 1.0]})
    np.testing.assert_allclose(model.predict(held_out), 2 * held_out["final_spread"] + 3, atol=1e-9)


def test_grid_search_picks_min_mean_rmse(mock_games_data, fast_config):
    X, y = feature_targets(normalize_games(mock_games_data))
    pipeline, _ = model_families(fast_config)["DAVE + Spread SVR"]
    grid = {"svr__C": [0.001, 0.1, 10.0], "svr__epsilon": [0.0, 2.0]}

    search = tune_family(pipeline, grid, X, y, fast_config)

    cv = RepeatedKFold(
        n_splits=fast_config.n_splits, n_repeats=fast_config.n_repeats, random_state=fast_config.random_state
    )
    brute = []
    for params in ParameterGrid(grid):
        est = clone(pipeline).set_params(**params)
        rmse = -cross_val_score(est, X, y, cv=cv, scoring="neg_root_mean_squared_error").mean()
        brute.append((rmse, params))
    best_rmse, best_params = min(brute, key=lambda t: t[0])

    assert search.best_params_ == best_params
    assert -search.best_score_ == pytest.approx(best_rmse)


def test_grid_ties_resolve_to_first_candidate(mock_games_data, fast_config):
    X, y = feature_targets(normalize_games(mock_games_data))
    pipeline, _ = model_families(fast_config)["DAVE + Spread LM"]
    # copy_X never changes the fit, so every candidate scores the same
    search = tune_family(pipeline, {"lm__copy_X": [True, False]}, X, y, fast_config)
    assert search.best_params_ == {"lm__copy_X": True}


def test_model_families_share_feature_schema(mock_games_data, fast_config):
    X, y = feature_targets(normalize_games(mock_games_data))
    for name, (pipeline, _) in model_families(fast_config).items():
        model = clone(pipeline).fit(X, y)
        first = model.predict(X.head(5))
        second = model.predict(X.head(5))
        np.testing.assert_array_equal(first, second)


def test_epsilon_pinned_when_not_tuned(fast_config):
    cfg = fast_config.model_copy(update={"tune_epsilon": False})
    _, grid = model_families(cfg)["DAVE + Spread SVR"]
    assert grid["svr__epsilon"] == [0.0]


def test_describe_params_names_split_rule(fast_config):
    _, grid = model_families(fast_config)["DAVE + Spread RF"]
    params = {"forest": grid["forest"][1], "forest__max_features": np.int64(2)}
    assert describe_params(params) == {"forest": "extratrees", "forest__max_features": 2}


def test_select_models():
    models = {"A": 1, "B": 2, "C": 3}
    summary = pd.DataFrame({"model": ["A", "B", "C"], "win_rate": [0.55, 0.48, np.nan]})

    assert select_models(models, summary) == models
    assert select_models(models, summary, keep=["C", "A"]) == {"C": 3, "A": 1}
    assert select_models(models, summary, min_win_rate=0.5) == {"A": 1}
    with pytest.raises(ValueError, match="Unknown model names"):
        select_models(models, summary, keep=["Z"])
    with pytest.raises(ValueError, match="No model reached"):
        select_models(models, summary, min_win_rate=0.9)


def test_bundle_round_trip(tmp_path, mock_games_data, fast_config):
    X, y = feature_targets(normalize_games(mock_games_data))
    pipeline, _ = model_families(fast_config)["DAVE + Spread RF"]
    model = clone(pipeline).fit(X, y)

    save_bundle({"DAVE + Spread RF": model}, [], tmp_path)
    reloaded = load(tmp_path / BUNDLE_FILE)

    np.testing.assert_array_equal(reloaded["DAVE + Spread RF"].predict(X), model.predict(X))


def test_train_models_writes_artifacts(trained_dir):
    out = Path(trained_dir) / "2023"
    for name in (BUNDLE_FILE, CARDS_FILE, SUMMARY_FILE, SANITY_FILE):
        assert (out / name).exists()

    summary = pd.read_csv(out / SUMMARY_FILE)
    assert set(summary["model"]) == {
        "Spread LM",
        "DAVE LM",
        "DAVE + Spread LM",
        "DAVE + Spread RF",
        "DAVE + Spread SVR",
    }
    assert summary["kept"].all()
    assert (summary["cv_rmse"] > 0).all()

    # Forests memorize their training partition
    rf = summary.set_index("model").loc["DAVE + Spread RF"]
    assert rf["train_rmse"] < rf["test_rmse"]

    cards = json.loads((out / CARDS_FILE).read_text())
    assert {c["name"] for c in cards} == set(summary["model"])
    assert all(c["features"] == ["final_spread", "dave_diff"] for c in cards)


def test_train_models_keeps_requested_subset(tmp_path, games_csv, fast_config):
    cfg = fast_config.model_copy(update={"rf_min_samples_leaf": [5], "svr_c": [1.0], "svr_epsilon": [0.0]})
    summary = train_models([games_csv], str(tmp_path), "2022", cfg, keep=["DAVE + Spread LM"])

    bundle = load(tmp_path / "2022" / BUNDLE_FILE)
    assert list(bundle) == ["DAVE + Spread LM"]
    assert summary.loc[summary["kept"], "model"].tolist() == ["DAVE + Spread LM"]


def test_forest_grid_starts_at_ranger_defaults(fast_config):
    _, grid = model_families(fast_config)["DAVE + Spread RF"]
    first = next(iter(ParameterGrid(grid)))
    assert describe_params(first) == {
        "forest": "variance",
        "forest__max_features": 1,
        "forest__min_samples_leaf": 5,
    }


def test_train_models_win_rate_floor_keeps_nothing(tmp_path, games_csv, fast_config):
    cfg = fast_config.model_copy(update={"rf_min_samples_leaf": [5], "svr_c": [1.0], "svr_epsilon": [0.0]})
    with pytest.raises(ValueError, match="nothing to persist"):
        train_models([games_csv], str(tmp_path), "2021", cfg, min_win_rate=1.01)

    out = tmp_path / "2021"
    assert not (out / BUNDLE_FILE).exists()
    summary = pd.read_csv(out / SUMMARY_FILE)
    assert len(summary) == 5
    assert not summary["kept"].any()
