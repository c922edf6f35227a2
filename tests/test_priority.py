"""
Tests for priority scoring and ranking.
"""
import datetime as dt

import pytest
from hypothesis import given
from hypothesis import strategies as st

from errors import InvalidInputError, NotFoundError
from services.priority_service import age_in_days, level, score
from services.store import IssueRecord

NOW = dt.datetime(2025, 6, 15, 12, 0, 0)


def record(status="pending", severity="medium", age_days=0.0) -> IssueRecord:
    created = NOW - dt.timedelta(days=age_days)
    return IssueRecord(
        id=1,
        category="Road Management",
        severity=severity,
        status=status,
        lat=19.0,
        lng=72.0,
        location_name="Andheri East",
        municipality="Mumbai",
        ward="K-East",
        description="pothole",
        ai_description=None,
        image=None,
        created_at=created,
        updated_at=created,
    )


class TestScore:
    """Tests for the pure scoring function."""

    def test_pending_high_severity_example(self):
        """20 upvotes, 5 comments, high severity, 10 days old scores 90."""
        assert score(record(severity="high", age_days=10), 20, 5, NOW) == 90
        assert level(90) == "high"

    def test_in_progress_is_damped(self):
        """The same issue in progress is damped to 70%: 63, medium."""
        s = score(record(status="in-progress", severity="high", age_days=10), 20, 5, NOW)
        assert s == 63
        assert level(s) == "medium"

    def test_resolved_scores_zero(self):
        assert score(record(status="resolved", severity="high", age_days=30), 100, 100, NOW) == 0

    def test_unknown_severity_weighs_as_low(self):
        assert score(record(severity="critical"), 0, 0, NOW) == 10
        assert score(record(severity=None), 0, 0, NOW) == 10

    def test_severity_is_case_insensitive(self):
        assert score(record(severity="HIGH"), 0, 0, NOW) == 30

    def test_age_is_capped_at_ten_days(self):
        assert score(record(age_days=10), 0, 0, NOW) == score(record(age_days=400), 0, 0, NOW)

    def test_future_created_at_counts_as_zero_age(self):
        assert age_in_days(record(age_days=-2), NOW) == 0

    def test_partial_days_are_floored(self):
        assert age_in_days(record(age_days=2.9), NOW) == 2

    def test_damping_rounds_half_up(self):
        """medium severity (20) + 5 upvotes (10) + 5 days (10) = 40; x0.7 = 28."""
        assert score(record(status="in-progress", age_days=5), 5, 0, NOW) == 28
        assert score(record(status="in-progress", severity="low", age_days=0), 5, 2, NOW) == 17
        assert score(record(status="in-progress", severity="low", age_days=2), 1, 0, NOW) == 11


class TestLevel:
    @pytest.mark.parametrize(
        "value,expected",
        [(100, "high"), (70, "high"), (69, "medium"), (40, "medium"), (39, "low"), (0, "low")],
    )
    def test_boundaries(self, value, expected):
        assert level(value) == expected


class TestScoreProperties:
    """Property-based checks over the score function."""

    @given(
        status=st.sampled_from(["pending", "in-progress", "resolved"]),
        severity=st.sampled_from(["low", "medium", "high", None]),
        age=st.floats(min_value=-5, max_value=1000, allow_nan=False),
        upvotes=st.integers(min_value=0, max_value=10_000),
        comments=st.integers(min_value=0, max_value=10_000),
    )
    def test_score_is_bounded(self, status, severity, age, upvotes, comments):
        s = score(record(status=status, severity=severity, age_days=age), upvotes, comments, NOW)
        assert 0 <= s <= 100
        assert isinstance(s, int)

    @given(
        status=st.sampled_from(["pending", "in-progress"]),
        severity=st.sampled_from(["low", "medium", "high"]),
        age=st.integers(min_value=0, max_value=60),
        upvotes=st.integers(min_value=0, max_value=50),
        comments=st.integers(min_value=0, max_value=50),
        extra=st.integers(min_value=1, max_value=20),
    )
    def test_score_non_decreasing_in_engagement(self, status, severity, age, upvotes, comments, extra):
        issue = record(status=status, severity=severity, age_days=age)
        base = score(issue, upvotes, comments, NOW)
        assert score(issue, upvotes + extra, comments, NOW) >= base
        assert score(issue, upvotes, comments + extra, NOW) >= base

    @given(
        severity=st.sampled_from(["low", "medium", "high"]),
        upvotes=st.integers(min_value=0, max_value=100),
    )
    def test_resolved_always_zero(self, severity, upvotes):
        assert score(record(status="resolved", severity=severity), upvotes, upvotes, NOW) == 0


class TestGetPriority:
    """Tests for the single-issue priority operation."""

    def test_worked_example_end_to_end(self, engine, add_issue, add_engagement, now):
        issue_id = add_issue(severity="high", created_at=now - dt.timedelta(days=10))
        add_engagement(issue_id, upvotes=20, comments=5)

        out = engine.get_priority(issue_id)

        assert out["issueId"] == issue_id
        assert out["priorityScore"] == 90
        assert out["priorityLevel"] == "high"
        assert out["resolutionPrediction"] == {
            "estimatedDays": 7,
            "confidence": "low",
            "reasoning": "no historical data",
        }

    def test_counts_are_live(self, engine, add_issue, add_engagement):
        issue_id = add_issue(severity="low")
        assert engine.get_priority(issue_id)["priorityScore"] == 10
        add_engagement(issue_id, upvotes=3)
        assert engine.get_priority(issue_id)["priorityScore"] == 16

    def test_accepts_numeric_string_id(self, engine, add_issue):
        issue_id = add_issue()
        assert engine.get_priority(str(issue_id))["issueId"] == issue_id

    def test_missing_issue_raises_not_found(self, engine):
        with pytest.raises(NotFoundError) as exc:
            engine.get_priority(999)
        assert exc.value.error_code == "NOT_FOUND"
        assert exc.value.issue_id == 999

    @pytest.mark.parametrize("bad", [0, -3, "abc", "", None, True, 1.5])
    def test_malformed_id_is_rejected(self, engine, bad):
        with pytest.raises(InvalidInputError):
            engine.get_priority(bad)


class TestListByPriority:
    """Tests for ranking open issues."""

    def test_orders_by_score_and_keeps_newest_first_on_ties(self, engine, add_issue, add_engagement, now):
        newer = add_issue(created_at=now - dt.timedelta(hours=1))
        older = add_issue(created_at=now - dt.timedelta(hours=2))
        hot = add_issue(created_at=now - dt.timedelta(hours=3))
        add_engagement(hot, upvotes=10)
        add_issue(status="resolved", created_at=now)

        rows = engine.list_by_priority(10)

        assert [r["id"] for r in rows] == [hot, newer, older]
        assert rows[0]["priorityScore"] == 40
        assert rows[0]["priorityLevel"] == "medium"
        assert rows[1]["priorityScore"] == rows[2]["priorityScore"] == 20
        assert all(r["status"] != "resolved" for r in rows)

    def test_limit_selects_newest_candidates(self, engine, add_issue, add_engagement, now):
        old_hot = add_issue(created_at=now - dt.timedelta(days=30))
        add_engagement(old_hot, upvotes=15)
        fresh = [add_issue(created_at=now - dt.timedelta(minutes=m)) for m in (1, 2)]

        rows = engine.list_by_priority(2)

        assert sorted(r["id"] for r in rows) == sorted(fresh)

    def test_empty_store(self, engine):
        assert engine.list_by_priority() == []

    @pytest.mark.parametrize("bad", [0, 101, -1, "many", None])
    def test_limit_bounds(self, engine, bad):
        with pytest.raises(InvalidInputError):
            engine.list_by_priority(bad)

    def test_rows_carry_issue_fields(self, engine, add_issue):
        issue_id = add_issue(description=None, ai_description="Streetlight not working", category="Electricity")
        row = engine.list_by_priority(5)[0]
        assert row["id"] == issue_id
        assert row["description"] == "Streetlight not working"
        assert row["category"] == "Electricity"
        assert row["locationName"] == "Andheri East"
