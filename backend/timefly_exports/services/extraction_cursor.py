"""Extraction cursor.

Reads a user's time entries from the analytical store in fixed-size pages,
ordered by start time. Pages are fetched with keyset pagination on
``(start_time, id)`` so that, as long as the data does not change under the
cursor, every row is returned exactly once.

If the store does not give a snapshot across pages, a row inserted behind the
cursor during extraction is simply not exported; rows ahead of it are picked
up. That is the accepted single-pass consistency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError

from timefly_exports.core.database import AnalyticsStore
from timefly_exports.models.base import as_utc
from timefly_exports.models.time_entry import TimeEntry
from timefly_exports.services.date_range import DateRange
from timefly_exports.services.errors import ExtractionError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


@dataclass(frozen=True, slots=True)
class ExportRecord:
    """Read-only projection of one ``time_entries`` row."""

    entity: str
    type: str
    category: str
    start_time: datetime
    end_time: datetime
    project: str
    branch: str
    language: str
    dependencies: tuple[str, ...]
    machine_name_id: str
    line_additions: int
    line_deletions: int
    lines: int
    is_write: bool

    @classmethod
    def from_model(cls, row: TimeEntry) -> "ExportRecord":
        deps = tuple(d.strip() for d in (row.dependencies or "").split(",") if d.strip())
        return cls(
            entity=row.entity,
            type=row.type,
            category=row.category,
            start_time=as_utc(row.start_time),
            end_time=as_utc(row.end_time),
            project=row.project or "",
            branch=row.branch or "",
            language=row.language or "",
            dependencies=deps,
            machine_name_id=row.machine_name_id or "",
            line_additions=int(row.line_additions or 0),
            line_deletions=int(row.line_deletions or 0),
            lines=int(row.lines or 0),
            is_write=bool(row.is_write),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "type": self.type,
            "category": self.category,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "project": self.project,
            "branch": self.branch,
            "language": self.language,
            "dependencies": list(self.dependencies),
            "machine_name_id": self.machine_name_id,
            "line_additions": self.line_additions,
            "line_deletions": self.line_deletions,
            "lines": self.lines,
            "is_write": self.is_write,
        }


class ExtractionCursor:
    """
    Paginated reader over one user's time entries.

    Iterate ``pages()`` once; each item is a non-empty list of records. The
    cursor stops after a short or empty page. Read failures surface as
    ``ExtractionError`` with no retry.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        *,
        user_id: int,
        date_range: Optional[DateRange] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.store = store
        self.user_id = user_id
        self.date_range = date_range or DateRange()
        self.page_size = page_size

    def _base_query(self):
        stmt = select(TimeEntry).where(TimeEntry.user_id == self.user_id)

        bounds = self.date_range
        if bounds.start is not None:
            stmt = stmt.where(TimeEntry.start_time >= bounds.start)
        if bounds.end is not None:
            if bounds.end_exclusive:
                stmt = stmt.where(TimeEntry.end_time < bounds.end)
            else:
                stmt = stmt.where(TimeEntry.end_time <= bounds.end)

        return stmt.order_by(TimeEntry.start_time.asc(), TimeEntry.id.asc()).limit(self.page_size)

    def _page_query(self, after: Optional[tuple[datetime, str]]):
        stmt = self._base_query()
        if after is not None:
            last_start, last_id = after
            stmt = stmt.where(
                or_(
                    TimeEntry.start_time > last_start,
                    and_(TimeEntry.start_time == last_start, TimeEntry.id > last_id),
                )
            )
        return stmt

    async def pages(self) -> AsyncIterator[list[ExportRecord]]:
        after: Optional[tuple[datetime, str]] = None
        fetched = 0

        async with self.store.session() as session:
            while True:
                try:
                    rows = (await session.execute(self._page_query(after))).scalars().all()
                except SQLAlchemyError as exc:
                    logger.warning(
                        "Time entry read failed for user %s after %d rows", self.user_id, fetched
                    )
                    raise ExtractionError(f"Failed to read time entries: {exc}") from exc

                if not rows:
                    return

                fetched += len(rows)
                yield [ExportRecord.from_model(row) for row in rows]

                if len(rows) < self.page_size:
                    return

                last = rows[-1]
                after = (last.start_time, last.id)
