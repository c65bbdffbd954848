"""
Streamlit UI for the NFL pool margin models.
Run:
  streamlit run app.py
"""
from __future__ import annotations

from pathlib import Path

import pandas as pd
import streamlit as st

from nfl_margin_predictor.data_models import TrainConfig
from nfl_margin_predictor.predict import line_probability, predict_week
from nfl_margin_predictor.train import SUMMARY_FILE, train_models
from nfl_margin_predictor.utils import SEASON_SHEETS, season_dir

st.set_page_config(page_title="NFL Pool Margins", layout="wide")


def _parse_sources(text: str) -> list[str]:
    return [s.strip() for s in text.replace("\n", ",").split(",") if s.strip()]


def _download(df: pd.DataFrame, label: str, file_name: str) -> None:
    st.download_button(
        label,
        df.to_csv(index=False).encode("utf-8"),
        file_name=file_name,
        mime="text/csv",
    )


# ---------- UI ----------
st.title("🏈 NFL Pool Margins")

with st.sidebar:
    st.markdown("### Settings")
    models_dir = st.text_input("Models directory", "./models")
    season = st.selectbox("Season", sorted(SEASON_SHEETS), index=len(SEASON_SHEETS) - 1)
    week = st.number_input("Week", min_value=1, max_value=22, value=1, step=1)
    st.divider()
    sources_text = st.text_area("Training data (CSV paths, URLs or sheet ids)", "")
    random_state = st.number_input("Random seed", value=42, step=1)
    tune_epsilon = st.checkbox("Tune SVR epsilon", value=True)
    st.divider()
    c1, c2 = st.columns(2)
    btn_train = c1.button("🚀 Train Models")
    btn_predict = c2.button("🔮 Predict Week")

# TRAIN
if btn_train:
    sources = _parse_sources(sources_text)
    if not sources:
        st.warning("Add at least one training data source.")
    else:
        with st.spinner("Tuning and training models..."):
            try:
                cfg = TrainConfig(random_state=int(random_state), tune_epsilon=tune_epsilon)
                summary = train_models(sources, models_dir, season, cfg)
                st.success("Training complete")
                st.dataframe(summary, use_container_width=True, hide_index=True)
                _download(summary, "Download training_summary.csv", SUMMARY_FILE)
            except Exception as e:
                st.error(f"Training failed: {e}")

# PREDICT
if btn_predict:
    with st.spinner("Predicting..."):
        try:
            preds = predict_week(season, int(week), models_dir)
            probs = line_probability(season, int(week), models_dir)
            st.subheader(f"Week {int(week)} predicted home margins")
            st.dataframe(preds, use_container_width=True, hide_index=True)
            _download(preds, "Download predictions.csv", f"week-{int(week)}.csv")
            st.subheader("Cover probabilities against the pool spread")
            st.dataframe(probs, use_container_width=True, hide_index=True)
        except (LookupError, FileNotFoundError) as e:
            st.warning(f"Nothing to predict with: {e}")
        except Exception as e:
            st.error(f"Prediction failed: {e}")

summary_path = season_dir(models_dir, season) / SUMMARY_FILE
if Path(summary_path).exists():
    with st.expander("Last training summary"):
        st.dataframe(pd.read_csv(summary_path), use_container_width=True, hide_index=True)
