from .predict import predict_week
from .train import train_models

__all__ = ["train_models", "predict_week"]
