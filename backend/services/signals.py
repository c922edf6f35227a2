from __future__ import annotations

from dataclasses import dataclass

from errors import NotFoundError
from services.store import IssueRecord, IssueStore


@dataclass(frozen=True)
class Signals:
    issue: IssueRecord
    upvote_count: int
    comment_count: int


class SignalAggregator:
    """Engagement counts are always recounted from the upvote/comment tables; nothing is cached."""

    def __init__(self, store: IssueStore) -> None:
        self.store = store

    def collect(self, issue_id: int) -> Signals:
        issue = self.store.get_issue(issue_id)
        if issue is None:
            raise NotFoundError("Issue not found", issue_id=issue_id)
        return self.for_issue(issue)

    def for_issue(self, issue: IssueRecord) -> Signals:
        return Signals(
            issue=issue,
            upvote_count=self.store.count_upvotes(issue.id),
            comment_count=self.store.count_comments(issue.id),
        )
