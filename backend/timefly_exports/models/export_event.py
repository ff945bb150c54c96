"""Export event model.

Audit trail for export jobs: one row per job attempt, success or failure.
Rows are append-only; ``cleaned_up`` is the only column updated after
insert, by the expired-export garbage collector.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from timefly_exports.models.base import Base, generate_uuid, utc_now


class ExportEvent(Base):
    __tablename__ = "export_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    entries_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cleaned_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[str] = mapped_column(String(2000), nullable=False, default="")

    # Artifact written by the job, if any
    file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_export_events_user_timestamp", "user_id", "timestamp"),
        Index("ix_export_events_expiry", "cleaned_up", "expires_at"),
    )
