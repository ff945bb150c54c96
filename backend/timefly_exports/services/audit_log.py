"""Export audit log.

Append-only record of export outcomes in the ``export_events`` table, plus
the two queries the garbage collector needs and a per-user summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from timefly_exports.core.database import AnalyticsStore
from timefly_exports.models.base import utc_now
from timefly_exports.models.export_event import ExportEvent
from timefly_exports.services.errors import AuditLogError

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    user_id: int
    expires_at: datetime
    entries_count: int = 0
    file_size_bytes: int = 0
    processing_time_ms: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    email_sent: bool = False
    error_message: str = ""
    file_name: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ExpiredExport:
    id: str
    user_id: int
    file_name: Optional[str]


@dataclass(frozen=True)
class ExportSummary:
    total_exports: int = 0
    total_entries: int = 0
    total_size_bytes: int = 0
    avg_processing_time_ms: float = 0.0
    failed_exports: int = 0
    cleaned_up_exports: int = 0


class AuditLog:
    def __init__(self, store: AnalyticsStore):
        self.store = store

    async def append(self, entry: AuditEntry) -> str:
        """Insert one audit row and return its id."""
        row = ExportEvent(
            user_id=entry.user_id,
            timestamp=entry.timestamp,
            entries_count=entry.entries_count,
            file_size_bytes=entry.file_size_bytes,
            processing_time_ms=entry.processing_time_ms,
            start_date=entry.start_date,
            end_date=entry.end_date,
            expires_at=entry.expires_at,
            email_sent=entry.email_sent,
            cleaned_up=False,
            error_message=entry.error_message[:2000],
            file_name=entry.file_name,
        )
        try:
            async with self.store.session() as session:
                async with session.begin():
                    session.add(row)
        except SQLAlchemyError as e:
            raise AuditLogError(f"Failed to record export event: {e}") from e
        return row.id

    async def find_expired(self, now: Optional[datetime] = None) -> list[ExpiredExport]:
        now = now or utc_now()
        stmt = (
            select(ExportEvent.id, ExportEvent.user_id, ExportEvent.file_name)
            .where(ExportEvent.expires_at <= now, ExportEvent.cleaned_up.is_(False))
            .order_by(ExportEvent.expires_at.asc())
        )
        try:
            async with self.store.session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise AuditLogError(f"Failed to query expired exports: {e}") from e
        return [ExpiredExport(id=r.id, user_id=r.user_id, file_name=r.file_name) for r in rows]

    async def mark_cleaned_up(self, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        stmt = (
            update(ExportEvent)
            .where(ExportEvent.id.in_(ids), ExportEvent.cleaned_up.is_(False))
            .values(cleaned_up=True)
        )
        try:
            async with self.store.session() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise AuditLogError(f"Failed to mark exports cleaned up: {e}") from e
        return int(result.rowcount or 0)

    async def summarize(self, user_id: int) -> ExportSummary:
        stmt = select(
            func.count(ExportEvent.id),
            func.coalesce(func.sum(ExportEvent.entries_count), 0),
            func.coalesce(func.sum(ExportEvent.file_size_bytes), 0),
            func.coalesce(func.avg(ExportEvent.processing_time_ms), 0),
            func.coalesce(func.sum(case((ExportEvent.error_message != "", 1), else_=0)), 0),
            func.coalesce(func.sum(case((ExportEvent.cleaned_up.is_(True), 1), else_=0)), 0),
        ).where(ExportEvent.user_id == user_id)
        try:
            async with self.store.session() as session:
                total, entries, size, avg_ms, failed, cleaned = (await session.execute(stmt)).one()
        except SQLAlchemyError as e:
            raise AuditLogError(f"Failed to summarize exports: {e}") from e

        return ExportSummary(
            total_exports=int(total),
            total_entries=int(entries),
            total_size_bytes=int(size),
            avg_processing_time_ms=round(float(avg_ms), 2),
            failed_exports=int(failed),
            cleaned_up_exports=int(cleaned),
        )
