import numpy as np
import pandas as pd
import pytest

from nfl_margin_predictor.data_models import TrainConfig
from nfl_margin_predictor.train import train_models

TEAMS = ["KC", "DET", "BUF", "NYJ", "PHI", "NE", "SF", "PIT", "DAL", "NYG", "MIA", "LAC", "JAX", "WSH"]


def make_games(weeks, games_per_week: int, seed: int = 0, with_margin: bool = True) -> pd.DataFrame:
    """Synthetic games in the sheet's header layout (no live sheet access)."""
    rng = np.random.default_rng(seed)
    n = len(weeks) * games_per_week
    final = rng.choice(np.arange(-14.0, 14.5, 0.5), size=n)
    move = rng.choice([-1.5, -1.0, -0.5, 0.0, 0.5, 1.0, 1.5], size=n)
    dave = rng.normal(0, 20, size=n).round(1)
    margin = (-final + 0.08 * dave + rng.normal(0, 10, size=n)).round()
    road = rng.choice(TEAMS, size=n)
    home = rng.choice(TEAMS, size=n)
    df = pd.DataFrame(
        {
            "Week": np.repeat(list(weeks), games_per_week),
            "Road": road,
            "Home": home,
            "Pool Spread": final - move,
            "Final Betting Line": final,
            "DAVE Differential": dave,
            "Home Margin": margin if with_margin else np.nan,
        }
    )
    return df


@pytest.fixture
def mock_games_data() -> pd.DataFrame:
    return make_games(range(1, 7), games_per_week=20)


@pytest.fixture
def playoff_games_data() -> pd.DataFrame:
    """Full season shape: 18 regular weeks, then 6/4/2/1 playoff games."""
    frames = [make_games(range(1, 19), games_per_week=16)]
    for seed, (week, n) in enumerate([(19, 6), (20, 4), (21, 2), (22, 1)], start=1):
        frames.append(make_games([week], games_per_week=n, seed=seed))
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def games_csv(tmp_path, mock_games_data) -> str:
    path = tmp_path / "history.csv"
    mock_games_data.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def week_csv(tmp_path) -> str:
    """Current-season sheet: week 7 has two games without a closing line yet."""
    df = make_games([6, 7], games_per_week=8, seed=3, with_margin=False)
    df.loc[df.index[-2:], "Final Betting Line"] = np.nan
    path = tmp_path / "season.csv"
    df.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def fast_config() -> TrainConfig:
    return TrainConfig(
        n_splits=3,
        n_repeats=1,
        n_trees=25,
        rf_min_samples_leaf=[5, 20],
        svr_c=[1.0, 0.1],
        svr_epsilon=[0.0, 1.0],
        grid_points=5,
    )


@pytest.fixture(scope="session")
def trained_dir(tmp_path_factory) -> str:
    root = tmp_path_factory.mktemp("artifacts")
    history = root / "history.csv"
    make_games(range(1, 7), games_per_week=20).to_csv(history, index=False)
    cfg = TrainConfig(n_splits=3, n_repeats=1, n_trees=25, rf_min_samples_leaf=[5], svr_c=[1.0], grid_points=5)
    models_dir = root / "models"
    train_models([str(history)], str(models_dir), "2023", cfg)
    return str(models_dir)
