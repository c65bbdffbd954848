# file: nfl_margin_predictor/data_models.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class TrainConfig(BaseModel):
    """Split, cross-validation and grid defaults for the Model Trainer."""
    test_size: float = 0.2
    n_splits: int = 10
    n_repeats: int = 3
    random_state: int = 42

    # Random forest: fixed tree count, tuned split rule / mtry / leaf size.
    # First values are ranger's regression defaults (mtry = floor(sqrt(p)) = 1,
    # min.node.size = 5), not sklearn's; exact CV ties resolve to them.
    n_trees: int = 500
    rf_split_rules: List[str] = Field(default_factory=lambda: ["variance", "extratrees"])
    rf_max_features: List[int] = Field(default_factory=lambda: [1, 2])
    rf_min_samples_leaf: List[int] = Field(default_factory=lambda: [5, 10, 20, 40])

    # Linear SVR: cost and epsilon-insensitive margin
    svr_c: List[float] = Field(default_factory=lambda: [1.0, 0.01, 0.1, 10.0])
    svr_epsilon: List[float] = Field(default_factory=lambda: [0.0, 0.5, 1.0, 2.0, 3.0])
    tune_epsilon: bool = True
    svr_max_iter: int = 20000

    # Synthetic inputs for the qualitative sanity check
    spread_range: Tuple[float, float] = (-17.0, 17.0)
    dave_range: Tuple[float, float] = (-50.0, 50.0)
    grid_points: int = 21


class ModelCard(BaseModel):
    """Metadata persisted with each trained model."""
    name: str
    version: str = "1.0"
    features: List[str]
    best_params: Dict[str, Any] = Field(default_factory=dict)
    cv_rmse: float
    residual_std: float
    train_rows: int
    test_rows: int
    notes: Optional[str] = None


class PredictRequest(BaseModel):
    """FastAPI request body for /predict."""
    season: str
    week: int
    models_dir: str = "models"
    output_path: Optional[str] = None
    source: Optional[str] = None
