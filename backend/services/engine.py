from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from config import Settings
from services.category_service import CategorySuggester
from services.classifier import Classifier, build_classifier
from services.clock import Clock, SystemClock
from services.duplicate_service import DuplicateDetector
from services.forecast_service import Filters, RiskForecaster
from services.priority_service import PriorityService
from services.resolution_service import ResolutionPredictor
from services.signals import SignalAggregator
from services.store import IssueStore


class InferenceEngine:
    """
    Operations exposed to the HTTP layer. Components are wired here from one store,
    one classifier and one clock; none of them keeps state between calls.
    """

    def __init__(self, store: IssueStore, classifier: Classifier, clock: Clock, cfg: Settings) -> None:
        self.store = store
        self.classifier = classifier
        self.clock = clock

        self.aggregator = SignalAggregator(store)
        self.predictor = ResolutionPredictor(store, classifier)
        self.priority = PriorityService(
            store, self.aggregator, self.predictor, clock, max_workers=cfg.engine_max_workers
        )
        self.duplicates = DuplicateDetector(store, classifier, cfg)
        self.forecaster = RiskForecaster(store, clock, max_workers=cfg.engine_max_workers)
        self.categories = CategorySuggester(classifier)

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        session_factory: sessionmaker[Session],
        *,
        classifier: Classifier | None = None,
        clock: Clock | None = None,
    ) -> "InferenceEngine":
        return cls(
            IssueStore(session_factory),
            classifier or build_classifier(timeout_s=cfg.classifier_timeout_s),
            clock or SystemClock(),
            cfg,
        )

    def close(self) -> None:
        shutdown = getattr(self.classifier, "shutdown", None)
        if callable(shutdown):
            shutdown()

    def get_priority(self, issue_id: Any) -> dict:
        return self.priority.get_priority(issue_id)

    def list_by_priority(self, limit: Any = 20) -> list[dict]:
        return self.priority.list_by_priority(limit)

    def detect_duplicate(self, lat: Any, lng: Any, image_ref: Any = None, description: Any = None) -> dict:
        return self.duplicates.detect(lat, lng, image_ref, description).to_dict()

    def find_similar(self, description: Any, category: Any, lat: Any, lng: Any, limit: Any = 5) -> list[dict]:
        return [c.to_dict() for c in self.duplicates.find_similar(description, category, lat, lng, limit)]

    def predict_resolution(self, category: Any, severity: Any, description: Any = None) -> dict:
        return self.predictor.predict(category, severity, description).to_dict()

    def forecast_risk(self, location: Any, category: Any) -> dict:
        return self.forecaster.forecast(location, category)

    def bulk_forecast(self, municipality: Any = None, category: Any = None, ward: Any = None) -> list[dict]:
        return self.forecaster.bulk_forecast(Filters(municipality=municipality, category=category, ward=ward))

    def suggest_category(self, image_ref: Any) -> str:
        return self.categories.suggest(image_ref)
