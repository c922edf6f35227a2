from __future__ import annotations

import math
from typing import Any

from logging_config import get_logger
from services.clock import Clock
from services.fanout import bounded_map
from services.resolution_service import ResolutionPredictor
from services.scoring import round_half_up, severity_weight
from services.signals import SignalAggregator, Signals
from services.store import IssueRecord, IssueStore
from services.validation import require_issue_id, require_limit

logger = get_logger(__name__)

UPVOTE_CAP = 30
COMMENT_CAP = 20
AGE_CAP = 20
IN_PROGRESS_DAMPING = 0.7


def age_in_days(issue: IssueRecord, now) -> int:
    # clock skew between writers can put created_at slightly in the future
    return max(0, math.floor((now - issue.created_at).total_seconds() / 86400))


def score(issue: IssueRecord, upvote_count: int, comment_count: int, now) -> int:
    """
    Priority 0..100 from community signals, severity, age and status.

    upvotes 2 pts each (max 30), comments 2 pts each (max 20), severity weight x10
    (high 3, medium 2, anything else 1), age 2 pts/day (max 20). Resolved issues
    score 0; in-progress issues are damped to 70%.
    """
    if issue.status == "resolved":
        return 0

    raw = 0
    raw += min(max(upvote_count, 0) * 2, UPVOTE_CAP)
    raw += min(max(comment_count, 0) * 2, COMMENT_CAP)
    raw += severity_weight(issue.severity) * 10
    raw += min(age_in_days(issue, now) * 2, AGE_CAP)

    total = float(raw)
    if issue.status == "in-progress":
        total *= IN_PROGRESS_DAMPING

    return round_half_up(max(0.0, min(total, 100.0)))


def level(priority_score: int) -> str:
    if priority_score >= 70:
        return "high"
    if priority_score >= 40:
        return "medium"
    return "low"


class PriorityService:
    def __init__(
        self,
        store: IssueStore,
        aggregator: SignalAggregator,
        predictor: ResolutionPredictor,
        clock: Clock,
        *,
        max_workers: int = 8,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.predictor = predictor
        self.clock = clock
        self.max_workers = max_workers

    def score_signals(self, signals: Signals) -> int:
        return score(signals.issue, signals.upvote_count, signals.comment_count, self.clock.now())

    def get_priority(self, issue_id: Any) -> dict:
        issue_id = require_issue_id(issue_id)
        signals = self.aggregator.collect(issue_id)
        priority_score = self.score_signals(signals)
        prediction = self.predictor.predict_for_issue(signals.issue)
        return {
            "issueId": issue_id,
            "priorityScore": priority_score,
            "priorityLevel": level(priority_score),
            "resolutionPrediction": prediction.to_dict(),
        }

    def list_by_priority(self, limit: Any = 20) -> list[dict]:
        """
        Open issues ranked by priority, highest first.
        Candidates are the `limit` newest open issues; equal scores keep that newest-first order.
        """
        limit = require_limit(limit)
        issues = self.store.open_issues(limit=limit)

        def _score_one(issue: IssueRecord) -> int:
            return self.score_signals(self.aggregator.for_issue(issue))

        scores = bounded_map(_score_one, issues, max_workers=self.max_workers)

        rows = []
        for issue, s in zip(issues, scores):
            row = issue.to_dict()
            row["priorityScore"] = s
            row["priorityLevel"] = level(s)
            rows.append(row)
        rows.sort(key=lambda r: -r["priorityScore"])

        logger.info("priority_ranked", candidates=len(issues), limit=limit)
        return rows
