"""Numeric conventions shared by the priority, resolution and forecast components."""
from __future__ import annotations

import math

SEVERITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}


def severity_weight(severity: str | None) -> int:
    return SEVERITY_WEIGHTS.get((severity or "").lower(), 1)


def round_half_up(x: float) -> int:
    # Python's round() is banker's rounding; 2.5 must become 3 here.
    return int(math.floor(x + 0.5))
