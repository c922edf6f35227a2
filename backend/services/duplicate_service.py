from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from config import Settings
from errors import InvalidInputError
from logging_config import get_logger
from services.classifier import Classifier, Parsed, Unparsed
from services.store import IssueRecord, IssueStore
from services.validation import optional_text, require_coordinates, require_limit, require_text

logger = get_logger(__name__)

Window = Literal["strict", "standard", "wide"]

CANDIDATE_LIMIT = 10
TOP_CANDIDATES = 3
FALLBACK_CONFIDENCE = 0.3
DEFAULT_VERDICT_CONFIDENCE = 0.5
PROXIMITY_REASONING = "proximity only"
SIMILAR_FALLBACK_REASONING = "Nearby issue in same category"
MIN_SIMILAR_DESCRIPTION = 10


@dataclass(frozen=True)
class SimilarityCandidate:
    issue: IssueRecord
    confidence: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        out = self.issue.to_dict()
        out["confidence"] = self.confidence
        out["similarity"] = self.reasoning
        return out


@dataclass(frozen=True)
class DuplicateVerdict:
    is_duplicate: bool
    confidence: float
    candidates: list[SimilarityCandidate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isDuplicate": self.is_duplicate,
            "confidence": self.confidence,
            "candidates": [c.to_dict() for c in self.candidates],
        }


def _verdict_bool(v: Any) -> bool | None:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("true", "false"):
        return v.strip().lower() == "true"
    return None


def _verdict_confidence(v: Any) -> float:
    if isinstance(v, bool) or not isinstance(v, (int, float, str)):
        return DEFAULT_VERDICT_CONFIDENCE
    try:
        f = float(v)
    except ValueError:
        return DEFAULT_VERDICT_CONFIDENCE
    if f != f:  # NaN
        return DEFAULT_VERDICT_CONFIDENCE
    return max(0.0, min(f, 1.0))


class DuplicateDetector:
    """
    Two-stage duplicate funnel for a new report.

    1. Bounding box over open issues (newest first). Nothing nearby means not a duplicate,
       and the classifier is never called.
    2. With a photo on both the new report and the newest nearby issue, the classifier
       judges whether they show the same problem. Any classifier trouble falls back to
       treating proximity alone as a weak duplicate signal (confidence 0.3).

    Detection and the subsequent insert are not atomic: two reports for the same spot
    submitted together can both pass.
    """

    def __init__(self, store: IssueStore, classifier: Classifier, cfg: Settings) -> None:
        self.store = store
        self.classifier = classifier
        self.windows: dict[str, float] = {
            "strict": cfg.duplicate_window_strict_deg,
            "standard": cfg.duplicate_window_standard_deg,
            "wide": cfg.duplicate_window_wide_deg,
        }

    def detect(
        self,
        lat: Any,
        lng: Any,
        image_ref: Any = None,
        description: Any = None,
        *,
        window: Window = "standard",
    ) -> DuplicateVerdict:
        lat_f, lng_f = require_coordinates(lat, lng)
        image_ref = optional_text(image_ref)
        description = optional_text(description)
        if window not in self.windows:
            raise InvalidInputError("window must be one of strict, standard, wide", field="window", value=window)
        delta = self.windows[window]

        nearby = self.store.open_issues_near(lat=lat_f, lng=lng_f, delta_deg=delta, limit=CANDIDATE_LIMIT)
        if not nearby:
            return DuplicateVerdict(is_duplicate=False, confidence=0.0, candidates=[])

        newest = nearby[0]
        if image_ref and newest.image:
            result = self.classifier.compare_images(
                image_ref,
                newest.image,
                {"new_description": description, "existing_description": newest.text},
            )
            if isinstance(result, Parsed):
                verdict = self._from_classifier(result.data, nearby)
                if verdict is not None:
                    return verdict
                logger.info("duplicate_verdict_unparseable", nearby=len(nearby))
            elif isinstance(result, Unparsed):
                logger.info("duplicate_classifier_fallback", nearby=len(nearby), reason=result.reason)

        return self._proximity_only(nearby)

    @staticmethod
    def _from_classifier(data: Any, nearby: list[IssueRecord]) -> DuplicateVerdict | None:
        if not isinstance(data, dict):
            return None
        is_dup = _verdict_bool(data.get("isDuplicate"))
        if is_dup is None:
            return None
        confidence = _verdict_confidence(data.get("confidence", DEFAULT_VERDICT_CONFIDENCE))
        reasoning = str(data.get("reasoning") or "").strip() or "Nearby similar issue"
        return DuplicateVerdict(
            is_duplicate=is_dup,
            confidence=confidence,
            candidates=[
                SimilarityCandidate(issue=i, confidence=confidence, reasoning=reasoning)
                for i in nearby[:TOP_CANDIDATES]
            ],
        )

    @staticmethod
    def _proximity_only(nearby: list[IssueRecord]) -> DuplicateVerdict:
        return DuplicateVerdict(
            is_duplicate=len(nearby) > 0,
            confidence=FALLBACK_CONFIDENCE,
            candidates=[
                SimilarityCandidate(issue=i, confidence=FALLBACK_CONFIDENCE, reasoning=PROXIMITY_REASONING)
                for i in nearby[:TOP_CANDIDATES]
            ],
        )

    def find_similar(
        self,
        description: Any,
        category: Any,
        lat: Any,
        lng: Any,
        limit: Any = 5,
    ) -> list[SimilarityCandidate]:
        """
        Open issues of the same category within ~1 km whose descriptions read like the new one.
        Short descriptions (under 10 characters) carry too little signal and return nothing.
        """
        lat_f, lng_f = require_coordinates(lat, lng)
        category = require_text(category, "category")
        limit = require_limit(limit)
        description = optional_text(description)
        if not description or len(description) < MIN_SIMILAR_DESCRIPTION:
            return []

        nearby = self.store.open_issues_near(
            lat=lat_f,
            lng=lng_f,
            delta_deg=self.windows["wide"],
            limit=CANDIDATE_LIMIT,
            category=category,
        )
        if not nearby:
            return []

        result = self.classifier.rank_similar(description, [i.text or "" for i in nearby])
        if isinstance(result, Parsed):
            ranked = self._ranked(result.data, nearby, limit)
            if ranked is not None:
                return ranked
            logger.info("similar_ranking_unparseable", nearby=len(nearby))
        elif isinstance(result, Unparsed):
            logger.info("similar_classifier_fallback", nearby=len(nearby), reason=result.reason)

        return [
            SimilarityCandidate(issue=i, confidence=FALLBACK_CONFIDENCE, reasoning=SIMILAR_FALLBACK_REASONING)
            for i in nearby[:limit]
        ]

    @staticmethod
    def _ranked(data: Any, nearby: list[IssueRecord], limit: int) -> list[SimilarityCandidate] | None:
        if not isinstance(data, dict) or not isinstance(data.get("similar"), list):
            return None
        reasoning = str(data.get("reasoning") or "").strip() or "Similar issue found"
        picked: list[IssueRecord] = []
        for idx in data["similar"]:
            if isinstance(idx, bool) or not isinstance(idx, int):
                continue
            if 1 <= idx <= len(nearby) and nearby[idx - 1] not in picked:
                picked.append(nearby[idx - 1])
        total = len(picked[:limit])
        # rank 1 gets 1.0, decreasing linearly; the classifier gives order, not scores
        return [
            SimilarityCandidate(issue=i, confidence=round(1.0 - pos / (total + 1), 2), reasoning=reasoning)
            for pos, i in enumerate(picked[:limit])
        ]

