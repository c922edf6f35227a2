from __future__ import annotations

import base64
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Literal

import requests

from config import Settings, settings as default_settings
from logging_config import get_logger

logger = get_logger(__name__)

Expect = Literal["dict", "list", "any"]
FailureReason = Literal["http", "timeout", "invalid_json", "image_fetch"]

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass(eq=False)
class GeminiError(Exception):
    message: str
    model: str
    reason: FailureReason | str
    http_status: int | None = None
    response_snippet: str | None = None

    def __str__(self) -> str:
        base = f"{self.reason} model={self.model}: {self.message}"
        if self.http_status:
            base += f" (HTTP {self.http_status})"
        return base


@dataclass(frozen=True)
class GeminiResult:
    ok: bool
    model_used: str
    parsed_json: Any | None
    raw_text: str | None
    error: str | None

    @classmethod
    def failure(cls, model: str, error: str) -> "GeminiResult":
        return cls(ok=False, model_used=model, parsed_json=None, raw_text=None, error=error)


@dataclass(frozen=True)
class InlineImage:
    mime_type: str
    data_b64: str

    def as_part(self) -> dict[str, Any]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data_b64}}


@dataclass(frozen=True)
class _Request:
    prompt: str
    images: list[InlineImage]
    temperature: float
    max_output_tokens: int
    timeout_s: int
    want_json: bool
    expect: Expect


def _fmt_error(e: BaseException | None) -> str:
    return f"{type(e).__name__}: {e}" if e is not None else "Gemini failed"


class GeminiClient:
    """
    Thin REST wrapper around Gemini generateContent.

    Models are tried primary first, then fallback. Each model gets
    GEMINI_ATTEMPTS_PER_MODEL attempts with exponential backoff (1s, 2s, ...).
    Referenced images are downloaded once per call and sent inline as base64.
    Nothing raises: the outcome is always a GeminiResult.
    """

    def __init__(self, cfg: Settings | None = None, http: requests.Session | None = None) -> None:
        self.cfg = cfg or default_settings
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.cfg.gemini_api_key)

    def generate_json(
        self,
        *,
        prompt: str,
        image_urls: list[str] | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        expect: Expect = "any",
        timeout_s: int | None = None,
    ) -> GeminiResult:
        return self._run(prompt, image_urls, temperature, max_output_tokens, timeout_s, want_json=True, expect=expect)

    def generate_text(
        self,
        *,
        prompt: str,
        image_urls: list[str] | None = None,
        timeout_s: int | None = None,
    ) -> GeminiResult:
        return self._run(prompt, image_urls, None, None, timeout_s, want_json=False, expect="any")

    def _run(
        self,
        prompt: str,
        image_urls: list[str] | None,
        temperature: float | None,
        max_output_tokens: int | None,
        timeout_s: int | None,
        *,
        want_json: bool,
        expect: Expect,
    ) -> GeminiResult:
        cfg = self.cfg
        if not self.configured:
            return GeminiResult.failure(cfg.gemini_model_primary, "GEMINI_API_KEY not configured")

        timeout = int(cfg.gemini_timeout_s if timeout_s is None else timeout_s)
        try:
            images = [self._fetch_image(u, timeout_s=timeout) for u in (image_urls or [])]
        except (requests.RequestException, GeminiError) as e:
            logger.info("gemini_image_fetch_failed", error=str(e))
            return GeminiResult.failure(cfg.gemini_model_primary, _fmt_error(e))

        req = _Request(
            prompt=prompt,
            images=images,
            temperature=float(cfg.gemini_temperature if temperature is None else temperature),
            max_output_tokens=int(cfg.gemini_max_output_tokens if max_output_tokens is None else max_output_tokens),
            timeout_s=timeout,
            want_json=want_json,
            expect=expect,
        )

        last_err: Exception | None = None
        for model in (cfg.gemini_model_primary, cfg.gemini_model_fallback):
            result, last_err = self._try_model(model, req)
            if result is not None:
                return result
        return GeminiResult.failure(cfg.gemini_model_fallback, _fmt_error(last_err))

    def _try_model(self, model: str, req: _Request) -> tuple[GeminiResult | None, Exception | None]:
        attempts = max(1, int(self.cfg.gemini_attempts_per_model))
        err: Exception | None = None
        for attempt in range(attempts):
            if attempt:
                time.sleep(1.0 * (2 ** (attempt - 1)))
            try:
                text = self._post(model, req)
                if not req.want_json:
                    return GeminiResult(ok=True, model_used=model, parsed_json=None, raw_text=text, error=None), None
                parsed = self._parse_json(text, model=model)
                self._check_shape(parsed, req.expect, model=model, text=text)
                return GeminiResult(ok=True, model_used=model, parsed_json=parsed, raw_text=text, error=None), None
            except (GeminiError, requests.Timeout, requests.ConnectionError) as e:
                err = e
                logger.debug("gemini_attempt_failed", model=model, attempt=attempt, error=str(e))
                if isinstance(e, GeminiError) and e.http_status and e.http_status not in RETRYABLE_STATUS:
                    break
        return None, err

    @staticmethod
    def _check_shape(parsed: Any, expect: Expect, *, model: str, text: str) -> None:
        if expect == "dict" and not isinstance(parsed, dict):
            raise GeminiError("Expected JSON object", model=model, reason="invalid_json", response_snippet=text[:500])
        if expect == "list" and not isinstance(parsed, list):
            raise GeminiError("Expected JSON array", model=model, reason="invalid_json", response_snippet=text[:500])

    def _fetch_image(self, url: str, *, timeout_s: int) -> InlineImage:
        resp = self.http.get(url, timeout=timeout_s)
        if resp.status_code >= 400:
            raise GeminiError(
                f"Image fetch failed for {url}", model="-", reason="image_fetch", http_status=resp.status_code
            )
        mime = (resp.headers.get("content-type") or "image/jpeg").split(";")[0].strip()
        return InlineImage(mime_type=mime, data_b64=base64.b64encode(resp.content).decode("ascii"))

    @staticmethod
    def _extract_json(text: str) -> str | None:
        """Recover a JSON payload wrapped in ``` fences or surrounded by prose."""
        s = (text or "").strip()
        if not s:
            return None
        s = re.sub(r"^```(?:json)?\s*", "", s, flags=re.IGNORECASE)
        s = re.sub(r"\s*```$", "", s)
        # objects first: arrays here only show up nested inside an object
        for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
            m = re.search(pattern, s)
            if m:
                return m.group(0).strip()
        return None

    def _parse_json(self, text: str, *, model: str) -> Any:
        try:
            return json.loads((text or "").strip())
        except ValueError as e:
            candidate = self._extract_json(text)
            if candidate:
                try:
                    return json.loads(candidate)
                except ValueError:
                    pass
            raise GeminiError(
                "Invalid JSON returned", model=model, reason="invalid_json", response_snippet=(text or "")[:500]
            ) from e

    def _post(self, model: str, req: _Request) -> str:
        generation_config: dict[str, Any] = {
            "temperature": req.temperature,
            "maxOutputTokens": req.max_output_tokens,
        }
        if req.want_json:
            generation_config["responseMimeType"] = "application/json"
        body = {
            "contents": [{"role": "user", "parts": [{"text": req.prompt}] + [i.as_part() for i in req.images]}],
            "generationConfig": generation_config,
        }

        resp = self.http.post(
            self.cfg.gemini_endpoint.format(model=model),
            params={"key": self.cfg.gemini_api_key},
            json=body,
            timeout=req.timeout_s,
        )
        if resp.status_code >= 400:
            kind = "Retryable" if resp.status_code in RETRYABLE_STATUS else "Non-retryable"
            raise GeminiError(
                f"{kind} Gemini error",
                model=model,
                reason="http",
                http_status=resp.status_code,
                response_snippet=(resp.text or "")[:500],
            )

        chunks = [
            part.get("text", "")
            for cand in resp.json().get("candidates", [])
            for part in cand.get("content", {}).get("parts", [])
        ]
        return "\n".join(chunks).strip()
