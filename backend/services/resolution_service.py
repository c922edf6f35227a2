from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from logging_config import get_logger
from services.classifier import Classifier, Parsed, Unparsed
from services.scoring import round_half_up
from services.store import IssueRecord, IssueStore
from services.validation import optional_text, require_severity, require_text

logger = get_logger(__name__)

HISTORY_LIMIT = 10
DEFAULT_DAYS = 7
HIGH_CONFIDENCE_SAMPLES = 5
SEVERITY_SCALE = {"high": 0.7, "low": 1.3}
CONFIDENCE_LEVELS = ("low", "medium", "high")


@dataclass(frozen=True)
class Prediction:
    estimated_days: int
    confidence: str
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimatedDays": self.estimated_days,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


def _as_number(v: Any) -> float | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        f = float(v)
    elif isinstance(v, str):
        try:
            f = float(v.strip())
        except ValueError:
            return None
    else:
        return None
    return f if math.isfinite(f) and f >= 0 else None


class ResolutionPredictor:
    """
    Expected days-to-resolution for a category/severity.

    History is the 10 most recently resolved issues of the category. The classifier
    may refine the historical mean; when it is unavailable or its answer does not
    parse, the mean is scaled by severity (high x0.7, low x1.3).
    """

    def __init__(self, store: IssueStore, classifier: Classifier) -> None:
        self.store = store
        self.classifier = classifier

    def predict(self, category: Any, severity: Any, description: Any = None) -> Prediction:
        return self._predict(
            require_text(category, "category"),
            require_severity(severity),
            optional_text(description),
        )

    def predict_for_issue(self, issue: IssueRecord) -> Prediction:
        severity = (issue.severity or "").lower()
        return self._predict(issue.category or "Other", severity, issue.text)

    def _predict(self, category: str, severity: str, description: str | None) -> Prediction:
        history = self.store.recently_resolved(category=category, limit=HISTORY_LIMIT)
        if not history:
            return Prediction(estimated_days=DEFAULT_DAYS, confidence="low", reasoning="no historical data")

        average_days = sum(i.resolution_days for i in history) / len(history)

        result = self.classifier.estimate(
            {
                "category": category,
                "severity": severity,
                "description": description,
                "average_days": average_days,
                "sample_count": len(history),
            }
        )
        if isinstance(result, Parsed):
            adjusted = self._from_classifier(result.data)
            if adjusted is not None:
                return adjusted
            logger.info("resolution_estimate_unparseable", category=category)
        elif isinstance(result, Unparsed):
            logger.debug("resolution_estimate_fallback", category=category, reason=result.reason)

        return self._fallback(average_days, severity, len(history))

    @staticmethod
    def _from_classifier(data: Any) -> Prediction | None:
        if not isinstance(data, dict):
            return None
        days = _as_number(data.get("estimatedDays"))
        if days is None:
            return None
        confidence = str(data.get("confidence") or "").strip().lower()
        if confidence not in CONFIDENCE_LEVELS:
            confidence = "medium"
        reasoning = str(data.get("reasoning") or "").strip() or "Based on historical data"
        return Prediction(estimated_days=round_half_up(days), confidence=confidence, reasoning=reasoning)

    @staticmethod
    def _fallback(average_days: float, severity: str, samples: int) -> Prediction:
        estimated = average_days * SEVERITY_SCALE.get(severity, 1.0)
        return Prediction(
            estimated_days=round_half_up(estimated),
            confidence="high" if samples >= HIGH_CONFIDENCE_SAMPLES else "medium",
            reasoning=f"Based on {samples} similar resolved issues",
        )
