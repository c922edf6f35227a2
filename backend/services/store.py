from __future__ import annotations

import datetime as dt
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from models import Comment, Issue, Upvote


@dataclass(frozen=True)
class IssueRecord:
    """Session-detached snapshot of an Issue row; safe to hand to worker threads."""

    id: int
    category: str | None
    severity: str | None
    status: str
    lat: float | None
    lng: float | None
    location_name: str | None
    municipality: str | None
    ward: str | None
    description: str | None
    ai_description: str | None
    image: str | None
    created_at: dt.datetime
    updated_at: dt.datetime
    resolved_at: dt.datetime | None = None

    @classmethod
    def from_row(cls, row: Issue) -> "IssueRecord":
        return cls(
            id=row.id,
            category=row.category,
            severity=row.severity,
            status=row.status,
            lat=row.lat,
            lng=row.lng,
            location_name=row.location_name,
            municipality=row.municipality,
            ward=row.ward,
            description=row.description,
            ai_description=row.ai_description,
            image=row.image,
            created_at=row.created_at,
            updated_at=row.updated_at,
            resolved_at=row.resolved_at,
        )

    @property
    def text(self) -> str | None:
        return self.description or self.ai_description

    @property
    def resolution_days(self) -> float:
        end = self.resolved_at or self.updated_at
        return (end - self.created_at).total_seconds() / 86400.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "status": self.status,
            "lat": self.lat,
            "lng": self.lng,
            "locationName": self.location_name,
            "municipality": self.municipality,
            "ward": self.ward,
            "description": self.text,
            "image": self.image,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def _like_pattern(s: str) -> str:
    escaped = s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class IssueStore:
    """
    Read-only access to the issue corpus.

    Every method opens its own short-lived session so that bulk operations can call
    the store from several worker threads at once. Results are IssueRecord snapshots,
    never live ORM objects.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def _records(self, stmt) -> list[IssueRecord]:
        with self._session() as db:
            return [IssueRecord.from_row(r) for r in db.execute(stmt).scalars().all()]

    @staticmethod
    def _newest_first(stmt):
        return stmt.order_by(Issue.created_at.desc(), Issue.id.desc())

    def get_issue(self, issue_id: int) -> IssueRecord | None:
        with self._session() as db:
            row = db.get(Issue, issue_id)
            return IssueRecord.from_row(row) if row is not None else None

    def count_upvotes(self, issue_id: int) -> int:
        with self._session() as db:
            return int(
                db.execute(select(func.count()).select_from(Upvote).where(Upvote.issue_id == issue_id)).scalar_one()
                or 0
            )

    def count_comments(self, issue_id: int) -> int:
        with self._session() as db:
            return int(
                db.execute(select(func.count()).select_from(Comment).where(Comment.issue_id == issue_id)).scalar_one()
                or 0
            )

    def open_issues(self, *, limit: int) -> list[IssueRecord]:
        stmt = self._newest_first(select(Issue).where(Issue.status != "resolved")).limit(limit)
        return self._records(stmt)

    def open_issues_near(
        self,
        *,
        lat: float,
        lng: float,
        delta_deg: float,
        limit: int,
        category: str | None = None,
    ) -> list[IssueRecord]:
        """Open issues inside the lat/lng bounding box [lat±delta, lng±delta], newest first."""
        stmt = select(Issue).where(
            Issue.lat.between(lat - delta_deg, lat + delta_deg),
            Issue.lng.between(lng - delta_deg, lng + delta_deg),
            Issue.status != "resolved",
        )
        if category:
            stmt = stmt.where(Issue.category == category)
        return self._records(self._newest_first(stmt).limit(limit))

    def recently_resolved(self, *, category: str, limit: int) -> list[IssueRecord]:
        resolved_on = func.coalesce(Issue.resolved_at, Issue.updated_at)
        stmt = (
            select(Issue)
            .where(Issue.category == category, Issue.status == "resolved")
            .order_by(resolved_on.desc(), Issue.id.desc())
            .limit(limit)
        )
        return self._records(stmt)

    def issues_matching_location(self, *, location: str, category: str, limit: int) -> list[IssueRecord]:
        """Case-insensitive substring match on location_name, same category, newest first."""
        stmt = select(Issue).where(
            Issue.location_name.ilike(_like_pattern(location), escape="\\"),
            Issue.category == category,
        )
        return self._records(self._newest_first(stmt).limit(limit))

    def recent_issues(
        self,
        *,
        limit: int,
        municipality: str | None = None,
        category: str | None = None,
        ward: str | None = None,
    ) -> list[IssueRecord]:
        stmt = select(Issue)
        if municipality:
            stmt = stmt.where(Issue.municipality == municipality)
        if category:
            stmt = stmt.where(Issue.category == category)
        if ward:
            stmt = stmt.where(Issue.ward == ward)
        return self._records(self._newest_first(stmt).limit(limit))
