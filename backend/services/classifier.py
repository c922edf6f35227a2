"""
Classifier capability used by the duplicate detector, resolution predictor and
category suggestion.

Every response is a tagged result: Parsed(data) when the model answered with the
expected structure, Unparsed(reason) for anything else (not configured, HTTP
failure, timeout, malformed output). Call sites branch on the tag; nothing here
raises to callers once wrapped in ClassifierAdapter.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Protocol, Union

from logging_config import get_logger
from services.gemini_client import GeminiClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class Parsed:
    data: Any


@dataclass(frozen=True)
class Unparsed:
    reason: str


ClassifierResult = Union[Parsed, Unparsed]


class Classifier(Protocol):
    def classify_category(self, image_url: str) -> ClassifierResult: ...

    def compare_images(self, image_a: str, image_b: str, context: dict[str, Any]) -> ClassifierResult: ...

    def estimate(self, context: dict[str, Any]) -> ClassifierResult: ...

    def rank_similar(self, description: str, candidates: list[str]) -> ClassifierResult: ...


class NullClassifier:
    """Stand-in when no model is configured; every call degrades to the caller's fallback."""

    reason = "classifier not configured"

    def classify_category(self, image_url: str) -> ClassifierResult:
        return Unparsed(self.reason)

    def compare_images(self, image_a: str, image_b: str, context: dict[str, Any]) -> ClassifierResult:
        return Unparsed(self.reason)

    def estimate(self, context: dict[str, Any]) -> ClassifierResult:
        return Unparsed(self.reason)

    def rank_similar(self, description: str, candidates: list[str]) -> ClassifierResult:
        return Unparsed(self.reason)


CATEGORY_PROMPT = """Analyze this image and determine which category it belongs to.
Categories are: "Road Management", "Waste Management", "Electricity", "Water Supply", or "Other".

Look for:
- Road Management: potholes, damaged roads, broken pavements, road signs issues
- Waste Management: garbage, trash, waste disposal issues, littering
- Electricity: broken street lights, electrical hazards, power line issues
- Water Supply: water leaks, broken pipes, water quality issues, drainage problems
- Other: anything that doesn't fit the above categories

Respond with ONLY the category name, nothing else."""

COMPARE_PROMPT = """Compare these two images. Are they showing the same issue/problem?
Also check if the descriptions match:
New: "{new_description}"
Existing: "{existing_description}"

Respond with JSON:
{{
  "isDuplicate": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}}"""

ESTIMATE_PROMPT = """Based on the following information, predict resolution time for a civic issue:
- Category: {category}
- Severity: {severity}
- Description: {description}
- Historical average for similar resolved issues: {average_days:.1f} days ({sample_count} samples)

Consider:
- High severity issues typically resolve faster
- Complex issues may take longer
- Common categories have established workflows

Respond with JSON:
{{
  "estimatedDays": number,
  "confidence": "high|medium|low",
  "reasoning": "brief explanation"
}}"""

RANK_PROMPT = """Given this new issue description:
"{description}"

Compare it with these existing issues and rank them by similarity (1 = most similar):
{numbered}

Respond with JSON listing the most similar issue numbers:
{{"similar": [1, 3, 5], "reasoning": "brief explanation"}}

Only include issues that are actually similar (not just in the same location)."""


class GeminiClassifier:
    def __init__(self, client: GeminiClient | None = None) -> None:
        self.client = client or GeminiClient()

    def _json(self, prompt: str, image_urls: list[str] | None = None) -> ClassifierResult:
        res = self.client.generate_json(prompt=prompt, image_urls=image_urls, expect="dict")
        if not res.ok or not isinstance(res.parsed_json, dict):
            return Unparsed(res.error or "unexpected response shape")
        return Parsed(res.parsed_json)

    def classify_category(self, image_url: str) -> ClassifierResult:
        res = self.client.generate_text(prompt=CATEGORY_PROMPT, image_urls=[image_url])
        if not res.ok or not (res.raw_text or "").strip():
            return Unparsed(res.error or "empty response")
        return Parsed(res.raw_text.strip())

    def compare_images(self, image_a: str, image_b: str, context: dict[str, Any]) -> ClassifierResult:
        prompt = COMPARE_PROMPT.format(
            new_description=context.get("new_description") or "No description",
            existing_description=context.get("existing_description") or "No description",
        )
        return self._json(prompt, image_urls=[image_a, image_b])

    def estimate(self, context: dict[str, Any]) -> ClassifierResult:
        prompt = ESTIMATE_PROMPT.format(
            category=context.get("category"),
            severity=context.get("severity"),
            description=context.get("description") or "Not provided",
            average_days=float(context.get("average_days") or 0.0),
            sample_count=int(context.get("sample_count") or 0),
        )
        return self._json(prompt)

    def rank_similar(self, description: str, candidates: list[str]) -> ClassifierResult:
        numbered = "\n".join(f'{i}. "{c or "No description"}"' for i, c in enumerate(candidates, 1))
        return self._json(RANK_PROMPT.format(description=description, numbered=numbered))


class ClassifierAdapter:
    """
    The one place classifier degradation policy lives.

    Each call runs on a small worker pool under a hard deadline. A timeout, an
    exception from the wrapped classifier or a result that is not a tagged
    ClassifierResult all come back as Unparsed, so components only ever deal
    with the two variants.
    """

    def __init__(self, inner: Classifier, *, timeout_s: float, max_workers: int = 4) -> None:
        self.inner = inner
        self.timeout_s = timeout_s
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="classifier")

    def _call(self, op: str, fn, *args) -> ClassifierResult:
        future = self._pool.submit(fn, *args)
        try:
            result = future.result(timeout=self.timeout_s)
        except FutureTimeout:
            future.cancel()
            logger.warning("classifier_timeout", op=op, timeout_s=self.timeout_s)
            return Unparsed("timeout")
        except Exception as e:
            logger.warning("classifier_failed", op=op, error=f"{type(e).__name__}: {e}")
            return Unparsed(f"{type(e).__name__}: {e}")

        if isinstance(result, Unparsed):
            logger.info("classifier_unparsed", op=op, reason=result.reason)
            return result
        if not isinstance(result, Parsed):
            logger.warning("classifier_unexpected_result", op=op, result_type=type(result).__name__)
            return Unparsed("unexpected result type")
        return result

    def classify_category(self, image_url: str) -> ClassifierResult:
        return self._call("classify_category", self.inner.classify_category, image_url)

    def compare_images(self, image_a: str, image_b: str, context: dict[str, Any]) -> ClassifierResult:
        return self._call("compare_images", self.inner.compare_images, image_a, image_b, context)

    def estimate(self, context: dict[str, Any]) -> ClassifierResult:
        return self._call("estimate", self.inner.estimate, context)

    def rank_similar(self, description: str, candidates: list[str]) -> ClassifierResult:
        return self._call("rank_similar", self.inner.rank_similar, description, candidates)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)


def build_classifier(client: GeminiClient | None = None, *, timeout_s: float) -> ClassifierAdapter:
    client = client or GeminiClient()
    inner: Classifier = GeminiClassifier(client) if client.configured else NullClassifier()
    return ClassifierAdapter(inner, timeout_s=timeout_s)
