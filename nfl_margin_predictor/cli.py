# file: nfl_margin_predictor/cli.py
from __future__ import annotations

import logging
from typing import List, Optional

import typer

from .data_models import TrainConfig
from .predict import line_probability, predict_week
from .train import train_models

app = typer.Typer(add_completion=False, help="NFL pool margin models CLI")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress")):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def train(
    season: str = typer.Argument(..., help="Season the bundle is trained for"),
    data: List[str] = typer.Option(..., help="Historical games: CSV path, URL or sheet id (repeatable)"),
    models_dir: str = typer.Option("models", help="Root folder for per-season artifacts"),
    test_size: float = 0.2,
    folds: int = 10,
    repeats: int = 3,
    random_state: int = 42,
    tune_epsilon: bool = True,
    keep: Optional[List[str]] = typer.Option(None, help="Model names to persist (default: all)"),
    min_win_rate: Optional[float] = typer.Option(None, help="Persist models at or above this test win rate"),
):
    cfg = TrainConfig(
        test_size=test_size,
        n_splits=folds,
        n_repeats=repeats,
        random_state=random_state,
        tune_epsilon=tune_epsilon,
    )
    summary = train_models(data, models_dir, season, cfg, keep=keep, min_win_rate=min_win_rate)
    typer.echo(summary.drop(columns=["best_params"]).to_string(index=False))


@app.command()
def predict(
    season: str = typer.Argument(..., help="The season to make predictions for"),
    week: int = typer.Argument(..., help="The week to make predictions for"),
    models_dir: str = typer.Option("models"),
    out: str = typer.Option(None, help="Output CSV (default: <models-dir>/<season>/weekly-predictions/week-<week>.csv)"),
    source: str = typer.Option(None, help="Override the season's sheet with a CSV path, URL or sheet id"),
):
    df = predict_week(season, week, models_dir, out, source)
    typer.echo(df.to_string(index=False))


@app.command("line-prob")
def line_prob(
    season: str = typer.Argument(...),
    week: int = typer.Argument(...),
    models_dir: str = typer.Option("models"),
    out: str = typer.Option(None),
    source: str = typer.Option(None),
):
    df = line_probability(season, week, models_dir, out, source)
    typer.echo(f"Wrote {len(df)} rows" if out else df.to_string(index=False))


if __name__ == "__main__":
    app()
