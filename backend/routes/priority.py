from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from routes.deps import get_engine
from services.engine import InferenceEngine

router = APIRouter(prefix="/api/priority", tags=["priority"])

Engine = Annotated[InferenceEngine, Depends(get_engine)]


@router.get("/issues")
def issues_by_priority(engine: Engine, limit: int = 20):
    """Open issues ranked by live priority score (highest first)."""
    return {"issues": engine.list_by_priority(limit)}


@router.get("/{issue_id}")
def issue_priority(issue_id: str, engine: Engine):
    return engine.get_priority(issue_id)
