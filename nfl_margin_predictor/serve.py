# file: nfl_margin_predictor/serve.py
from __future__ import annotations

from fastapi import FastAPI, HTTPException

from .data_models import PredictRequest
from .predict import predict_week

app = FastAPI(title="NFL Margin Predictor API", version="1.0")


@app.post("/predict")
def predict(req: PredictRequest):
    try:
        df = predict_week(req.season, req.week, req.models_dir, req.output_path, req.source)
        return {"rows": len(df), "columns": list(df.columns), "predictions": df.to_dict(orient="records")}
    except (LookupError, FileNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
