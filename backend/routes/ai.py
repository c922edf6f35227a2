from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from routes.deps import get_engine
from services.engine import InferenceEngine

router = APIRouter(prefix="/api/ai", tags=["ai"])

Engine = Annotated[InferenceEngine, Depends(get_engine)]


@router.post("/duplicates")
def detect_duplicate(payload: dict, engine: Engine):
    """
    Called by the report flow before a new issue is saved.
    Body: {"lat": .., "lng": .., "imageUrl": optional, "description": optional}
    """
    return engine.detect_duplicate(
        payload.get("lat"),
        payload.get("lng"),
        payload.get("imageUrl"),
        payload.get("description"),
    )


@router.post("/similar")
def similar_issues(payload: dict, engine: Engine):
    similar = engine.find_similar(
        payload.get("description"),
        payload.get("category"),
        payload.get("lat"),
        payload.get("lng"),
        payload.get("limit", 5),
    )
    return {"similarIssues": similar, "count": len(similar)}


@router.post("/category")
def suggest_category(payload: dict, engine: Engine):
    return {"category": engine.suggest_category(payload.get("imageUrl"))}
