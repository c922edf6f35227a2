"""Exception classes surfaced by the inference engine.

Classifier failures are deliberately absent: they are absorbed by
services.classifier.ClassifierAdapter and never reach callers.
"""
from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class NotFoundError(EngineError):
    """Referenced issue does not exist in the store."""

    def __init__(self, message: str, issue_id: Optional[int] = None, **kwargs):
        super().__init__(message, error_code="NOT_FOUND", **kwargs)
        self.issue_id = issue_id
        self.details.update({"issue_id": issue_id})


class InvalidInputError(EngineError):
    """Malformed id, coordinate or missing required field; rejected before any computation."""

    def __init__(self, message: str, field: Optional[str] = None, value: object = None, **kwargs):
        super().__init__(message, error_code="INVALID_INPUT", **kwargs)
        self.field = field
        self.value = value
        self.details.update({"field": field, "value": None if value is None else str(value)})
