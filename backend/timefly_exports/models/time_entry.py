"""Time entry model.

Aggregated activity rows written by the sync pipeline. The export subsystem
only ever reads them.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from timefly_exports.models.base import Base, generate_uuid


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    entity: Mapped[str] = mapped_column(String(1024), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, doc="file|app|domain")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="coding")

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    project: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    branch: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    language: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    # Comma-separated list, as written by the sync pipeline
    dependencies: Mapped[str] = mapped_column(String(4096), nullable=False, default="")
    machine_name_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    line_additions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    line_deletions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lines: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_time_entries_user_start", "user_id", "start_time", "id"),
    )
