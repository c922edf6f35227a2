from __future__ import annotations

from fastapi import Request

from services.engine import InferenceEngine


def get_engine(request: Request) -> InferenceEngine:
    return request.app.state.engine
