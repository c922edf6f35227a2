"""Input checks run before any store or classifier access."""
from __future__ import annotations

import math
from typing import Any

from errors import InvalidInputError
from models import SEVERITIES

MAX_LIMIT = 100


def require_issue_id(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInputError("Issue id must be a positive integer", field="issue_id", value=value)
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            raise InvalidInputError("Issue id must be a positive integer", field="issue_id", value=value)
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise InvalidInputError("Issue id must be a positive integer", field="issue_id", value=value)
    return value


def _coordinate(value: Any, field: str, bound: float) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field} is required", field=field, value=value)
    try:
        f = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"{field} must be a number", field=field, value=value) from e
    if not math.isfinite(f) or abs(f) > bound:
        raise InvalidInputError(f"{field} must be within ±{bound:g}", field=field, value=value)
    return f


def require_coordinates(lat: Any, lng: Any) -> tuple[float, float]:
    return _coordinate(lat, "lat", 90.0), _coordinate(lng, "lng", 180.0)


def require_text(value: Any, field: str) -> str:
    s = str(value).strip() if value is not None else ""
    if not s:
        raise InvalidInputError(f"{field} is required", field=field, value=value)
    return s


def require_severity(value: Any) -> str:
    s = require_text(value, "severity").lower()
    if s not in SEVERITIES:
        raise InvalidInputError("severity must be one of low, medium, high", field="severity", value=value)
    return s


def require_limit(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidInputError("limit must be an integer", field="limit", value=value) from e
    if isinstance(value, bool) or n < 1 or n > MAX_LIMIT:
        raise InvalidInputError(f"limit must be between 1 and {MAX_LIMIT}", field="limit", value=value)
    return n


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None
