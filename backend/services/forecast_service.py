from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

import pandas as pd

from logging_config import get_logger
from services.clock import Clock
from services.fanout import bounded_map
from services.scoring import severity_weight
from services.store import IssueRecord, IssueStore
from services.validation import optional_text, require_text

logger = get_logger(__name__)

MATCH_LIMIT = 50
FIRST_WORD_MATCH_LIMIT = 30
BULK_SCAN_LIMIT = 200
BULK_MIN_LIKELIHOOD = 25
BULK_MAX_RESULTS = 50
RECENT_WINDOW = dt.timedelta(days=7)
PREDICTED_ISSUES_SHOWN = 5


@dataclass(frozen=True)
class Filters:
    municipality: str | None = None
    category: str | None = None
    ward: str | None = None


def _frame(issues: list[IssueRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "created_at": pd.to_datetime([i.created_at for i in issues]),
            "severity_weight": [severity_weight(i.severity) for i in issues],
            "status": [i.status for i in issues],
            "resolution_days": [i.resolution_days for i in issues],
        }
    )


def _histogram(values: pd.Series) -> dict[int, int]:
    return {int(k): int(v) for k, v in values.value_counts().sort_index().items()}


def _confidence(likelihood: int) -> str:
    if likelihood > 50:
        return "high"
    if likelihood > 25:
        return "medium"
    return "low"


def _recommendation(likelihood: int) -> str:
    if likelihood > 50:
        return "High risk area - preventive maintenance recommended"
    if likelihood > 25:
        return "Moderate risk - regular monitoring advised"
    return "Low risk - standard procedures"


def likelihood_points(
    *,
    frequency: int,
    monthly: dict[int, int],
    hourly: dict[int, int],
    newest_created_at: dt.datetime | None,
    now: dt.datetime,
) -> int:
    """
    Additive evidence score, capped at 100:
    volume (+30 >10 matches, +20 >5, +10 >2), this month historically busy (+25 when >2),
    this hour historically busy (+20 when >1), and a match in the last 7 days (+25).
    """
    points = 0
    if frequency > 10:
        points += 30
    elif frequency > 5:
        points += 20
    elif frequency > 2:
        points += 10

    if monthly.get(now.month - 1, 0) > 2:
        points += 25
    if hourly.get(now.hour, 0) > 1:
        points += 20
    if newest_created_at is not None and newest_created_at >= now - RECENT_WINDOW:
        points += 25

    return max(0, min(points, 100))


class RiskForecaster:
    def __init__(self, store: IssueStore, clock: Clock, *, max_workers: int = 8) -> None:
        self.store = store
        self.clock = clock
        self.max_workers = max_workers

    def forecast(self, location: Any, category: Any) -> dict:
        location = require_text(location, "location")
        category = require_text(category, "category")
        return self._forecast(location, category, self.clock.now())

    def _matching_issues(self, location: str, category: str) -> list[IssueRecord]:
        """
        Substring match on the full location first. When that finds nothing, fall back to
        its first word so "Butwal Bus Park" still draws on "Butwal Ward 5" history.
        """
        issues = self.store.issues_matching_location(location=location, category=category, limit=MATCH_LIMIT)
        if issues:
            return issues
        words = location.split()
        if len(words) < 2:
            return []
        return self.store.issues_matching_location(
            location=words[0], category=category, limit=FIRST_WORD_MATCH_LIMIT
        )

    def _forecast(self, location: str, category: str, now: dt.datetime) -> dict:
        issues = self._matching_issues(location, category)

        if issues:
            df = _frame(issues)
            monthly = _histogram(df["created_at"].dt.month - 1)
            hourly = _histogram(df["created_at"].dt.hour)
            resolved = df.loc[df["status"] == "resolved", "resolution_days"]
            avg_severity = round(float(df["severity_weight"].mean()), 2)
            avg_resolution = round(float(resolved.mean()), 1) if len(resolved) else None
            newest = max(i.created_at for i in issues)
        else:
            monthly, hourly = {}, {}
            avg_severity, avg_resolution, newest = 0.0, None, None

        likelihood = likelihood_points(
            frequency=len(issues),
            monthly=monthly,
            hourly=hourly,
            newest_created_at=newest,
            now=now,
        )

        return {
            "location": location,
            "category": category,
            "likelihood": likelihood,
            "confidence": _confidence(likelihood),
            "recommendation": _recommendation(likelihood),
            "predictedIssues": [
                {
                    "category": i.category,
                    "location": i.location_name or location,
                    "date": i.created_at.isoformat(),
                    "severity": i.severity or "medium",
                }
                for i in issues[:PREDICTED_ISSUES_SHOWN]
            ],
            "patterns": {
                "seasonal": monthly,
                "timeOfDay": hourly,
                "frequency": len(issues),
                "severity": avg_severity,
                "resolutionTime": avg_resolution,
            },
        }

    def bulk_forecast(self, filters: Filters | None = None) -> list[dict]:
        """
        Forecast every (location, category) pair seen among the 200 newest matching issues.
        Only pairs above 25% likelihood are returned, highest first and at most 50; ties keep newest-first order.
        """
        f = filters or Filters()
        f = Filters(
            municipality=optional_text(f.municipality),
            category=optional_text(f.category),
            ward=optional_text(f.ward),
        )
        now = self.clock.now()
        recent = self.store.recent_issues(
            limit=BULK_SCAN_LIMIT, municipality=f.municipality, category=f.category, ward=f.ward
        )
        if not recent:
            logger.info("bulk_forecast_empty", filters=f.__dict__)
            return []

        groups = list(dict.fromkeys((i.location_name, i.category) for i in recent if i.location_name and i.category))

        reports = bounded_map(lambda g: self._forecast(g[0], g[1], now), groups, max_workers=self.max_workers)
        out = [r for r in reports if r["likelihood"] > BULK_MIN_LIKELIHOOD]
        out.sort(key=lambda r: -r["likelihood"])
        out = out[:BULK_MAX_RESULTS]

        logger.info("bulk_forecast_done", scanned=len(recent), groups=len(groups), returned=len(out))
        return out
