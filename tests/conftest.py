"""
Pytest configuration and shared fixtures for the civic issue engine.

Every test gets its own file-backed SQLite database so worker threads used by the
bulk operations see the same data the test inserted.
"""
import datetime as dt
import time

import pytest
from hypothesis import HealthCheck, Verbosity, settings as hypothesis_settings

from config import Settings
from database import make_engine, make_session_factory, session_scope
from models import Base, Comment, Issue, Upvote
from services.classifier import Parsed, Unparsed
from services.clock import FixedClock
from services.engine import InferenceEngine
from services.store import IssueStore

hypothesis_settings.register_profile(
    "default",
    max_examples=100,
    deadline=5000,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    verbosity=Verbosity.normal,
)

hypothesis_settings.register_profile(
    "ci",
    max_examples=200,
    deadline=10000,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    verbosity=Verbosity.quiet,
)

hypothesis_settings.register_profile(
    "debug",
    max_examples=10,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    verbosity=Verbosity.verbose,
)

hypothesis_settings.load_profile("default")

NOW = dt.datetime(2025, 6, 15, 12, 0, 0)


class FakeClassifier:
    """
    Scripted classifier. Each capability returns the configured result (a
    ClassifierResult, an exception to raise, or a callable producing either)
    and records its arguments.
    """

    def __init__(self, **results):
        self.results = results
        self.calls: list[tuple[str, tuple]] = []

    def _answer(self, op, *args):
        self.calls.append((op, args))
        result = self.results.get(op, Unparsed("not scripted"))
        if callable(result) and not isinstance(result, (Parsed, Unparsed)):
            result = result(*args)
        if isinstance(result, BaseException):
            raise result
        return result

    def classify_category(self, image_url):
        return self._answer("classify_category", image_url)

    def compare_images(self, image_a, image_b, context):
        return self._answer("compare_images", image_a, image_b, context)

    def estimate(self, context):
        return self._answer("estimate", context)

    def rank_similar(self, description, candidates):
        return self._answer("rank_similar", description, candidates)

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


def slow(seconds, result):
    def _run(*_args):
        time.sleep(seconds)
        return result

    return _run


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def cfg():
    return Settings(gemini_api_key=None, engine_max_workers=4, classifier_timeout_s=1.0)


@pytest.fixture
def session_factory(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'issues.db'}")
    Base.metadata.create_all(bind=eng)
    yield make_session_factory(eng)
    eng.dispose()


@pytest.fixture
def store(session_factory):
    return IssueStore(session_factory)


@pytest.fixture
def add_issue(session_factory):
    """Insert an issue and return its id. created_at defaults to NOW."""

    def _add(**fields) -> int:
        created_at = fields.pop("created_at", NOW)
        values = {
            "category": "Road Management",
            "severity": "medium",
            "status": "pending",
            "lat": 19.0760,
            "lng": 72.8777,
            "location_name": "Andheri East",
            "municipality": "Mumbai",
            "ward": "K-East",
            "description": "Large pothole near the bus stop",
            "created_at": created_at,
            "updated_at": fields.pop("updated_at", created_at),
        }
        values.update(fields)
        with session_scope(session_factory) as db:
            issue = Issue(**values)
            db.add(issue)
            db.flush()
            return issue.id

    return _add


@pytest.fixture
def add_engagement(session_factory):
    def _add(issue_id: int, *, upvotes: int = 0, comments: int = 0) -> None:
        with session_scope(session_factory) as db:
            for n in range(upvotes):
                db.add(Upvote(issue_id=issue_id, user_id=f"user-{n}"))
            for n in range(comments):
                db.add(Comment(issue_id=issue_id, user_id=f"user-{n}", comment="same here"))

    return _add


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def engine(store, classifier, clock, cfg):
    return InferenceEngine(store, classifier, clock, cfg)
