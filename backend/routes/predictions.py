from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from routes.deps import get_engine
from services.engine import InferenceEngine

router = APIRouter(prefix="/api/predictions", tags=["predictions"])

Engine = Annotated[InferenceEngine, Depends(get_engine)]


@router.get("")
def issue_prediction(engine: Engine, location: str | None = None, category: str | None = None):
    return {"success": True, "prediction": engine.forecast_risk(location, category)}


@router.get("/bulk")
def bulk_predictions(
    engine: Engine,
    municipality: str | None = None,
    category: str | None = None,
    ward: str | None = None,
):
    predictions = engine.bulk_forecast(municipality=municipality, category=category, ward=ward)
    return {"success": True, "predictions": predictions, "count": len(predictions)}


@router.get("/resolution")
def resolution_time(
    engine: Engine,
    category: str | None = None,
    severity: str | None = None,
    description: str | None = None,
):
    return engine.predict_resolution(category, severity, description)
