"""
Tests for the classifier degradation policy.
"""
import pytest

from conftest import FakeClassifier, slow
from config import Settings
from services.classifier import ClassifierAdapter, NullClassifier, Parsed, Unparsed, build_classifier
from services.gemini_client import GeminiClient


@pytest.fixture
def adapter_for():
    made = []

    def _make(inner, timeout_s=1.0):
        adapter = ClassifierAdapter(inner, timeout_s=timeout_s)
        made.append(adapter)
        return adapter

    yield _make
    for adapter in made:
        adapter.shutdown()


class TestClassifierAdapter:
    def test_parsed_passes_through(self, adapter_for):
        adapter = adapter_for(FakeClassifier(estimate=Parsed({"estimatedDays": 3})))
        assert adapter.estimate({}) == Parsed({"estimatedDays": 3})

    def test_unparsed_passes_through(self, adapter_for):
        adapter = adapter_for(FakeClassifier(rank_similar=Unparsed("bad json")))
        assert adapter.rank_similar("desc", ["a"]) == Unparsed("bad json")

    def test_exception_becomes_unparsed(self, adapter_for):
        adapter = adapter_for(FakeClassifier(compare_images=ConnectionError("refused")))
        result = adapter.compare_images("a", "b", {})
        assert isinstance(result, Unparsed)
        assert "ConnectionError" in result.reason

    def test_timeout_becomes_unparsed(self, adapter_for):
        adapter = adapter_for(FakeClassifier(classify_category=slow(2.0, Parsed("Other"))), timeout_s=0.1)
        assert adapter.classify_category("img") == Unparsed("timeout")

    def test_untagged_result_becomes_unparsed(self, adapter_for):
        adapter = adapter_for(FakeClassifier(estimate=lambda _ctx: {"estimatedDays": 3}))
        assert adapter.estimate({}) == Unparsed("unexpected result type")

    def test_arguments_are_forwarded(self, adapter_for):
        inner = FakeClassifier(compare_images=Parsed({}))
        adapter_for(inner).compare_images("a.jpg", "b.jpg", {"new_description": "x"})
        assert inner.calls == [("compare_images", ("a.jpg", "b.jpg", {"new_description": "x"}))]


class TestNullClassifier:
    def test_everything_is_unparsed(self):
        null = NullClassifier()
        assert isinstance(null.classify_category("img"), Unparsed)
        assert isinstance(null.compare_images("a", "b", {}), Unparsed)
        assert isinstance(null.estimate({}), Unparsed)
        assert isinstance(null.rank_similar("d", []), Unparsed)


class TestBuildClassifier:
    def test_without_api_key_uses_null_classifier(self):
        adapter = build_classifier(GeminiClient(Settings(gemini_api_key=None)), timeout_s=5)
        try:
            assert isinstance(adapter.inner, NullClassifier)
            assert adapter.timeout_s == 5
        finally:
            adapter.shutdown()

    def test_with_api_key_uses_gemini(self):
        adapter = build_classifier(GeminiClient(Settings(gemini_api_key="k")), timeout_s=5)
        try:
            assert not isinstance(adapter.inner, NullClassifier)
        finally:
            adapter.shutdown()
