from __future__ import annotations

from typing import Any

from logging_config import get_logger
from models import CATEGORIES
from services.classifier import Classifier, Parsed, Unparsed
from services.validation import optional_text

logger = get_logger(__name__)


def normalize_category(label: str | None) -> str:
    """Map a free-text classifier label onto the fixed category set; anything else is Other."""
    s = (label or "").strip().lower()
    if not s:
        return "Other"
    for cat in CATEGORIES:
        if cat.lower() in s:
            return cat
    return "Other"


class CategorySuggester:
    def __init__(self, classifier: Classifier) -> None:
        self.classifier = classifier

    def suggest(self, image_ref: Any) -> str:
        image_ref = optional_text(image_ref)
        if not image_ref:
            return "Other"
        result = self.classifier.classify_category(image_ref)
        if isinstance(result, Parsed):
            return normalize_category(str(result.data))
        if isinstance(result, Unparsed):
            logger.info("category_classifier_fallback", reason=result.reason)
        return "Other"
