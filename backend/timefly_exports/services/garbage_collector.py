"""Expired export garbage collector.

One sweep reconciles the artifact directory against the audit trail:

1. collect audit rows that are expired and not yet cleaned up;
2. delete every artifact on disk whose embedded ``expiresAt`` has passed,
   whether or not an audit row points at it;
3. mark the collected rows cleaned up, except those whose file could not be
   deleted.

Sweeps are idempotent and tolerate per-file failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from timefly_exports.core.metrics import export_gc_deleted_files_total, export_gc_failures_total
from timefly_exports.models.base import as_utc, utc_now
from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog, ExpiredExport
from timefly_exports.services.errors import AuditLogError

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    candidates: int = 0
    deleted_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    marked_cleaned_up: int = 0

    def as_dict(self) -> dict:
        return {
            "candidates": self.candidates,
            "deleted_files": len(self.deleted_files),
            "failed_files": len(self.failed_files),
            "marked_cleaned_up": self.marked_cleaned_up,
        }


class ExportGarbageCollector:
    def __init__(self, artifacts: ArtifactStore, audit_log: AuditLog):
        self.artifacts = artifacts
        self.audit_log = audit_log

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = as_utc(now) if now is not None else utc_now()
        report = SweepReport()

        try:
            candidates = await self.audit_log.find_expired(now)
        except AuditLogError:
            logger.exception("Failed to load expired export events; sweeping files only")
            candidates = []
        report.candidates = len(candidates)

        self._sweep_files(now, report)

        ids = self._reconcilable(candidates, report.failed_files)
        if ids:
            try:
                report.marked_cleaned_up = await self.audit_log.mark_cleaned_up(ids)
            except AuditLogError:
                logger.exception("Failed to mark %d export event(s) cleaned up", len(ids))

        logger.info(
            "Export cleanup: %d candidate(s), %d file(s) deleted, %d failed, %d row(s) marked",
            report.candidates,
            len(report.deleted_files),
            len(report.failed_files),
            report.marked_cleaned_up,
        )
        return report

    def _sweep_files(self, now: datetime, report: SweepReport) -> None:
        try:
            names = self.artifacts.list_artifacts()
        except OSError:
            logger.exception("Failed to list export directory %s", self.artifacts.directory)
            return

        for name in names:
            try:
                expires_at = self.artifacts.read_expires_at(name)
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable export file %s: %s", name, e)
                export_gc_failures_total.inc()
                report.failed_files.append(name)
                continue

            if expires_at > now:
                continue

            try:
                self.artifacts.delete(name)
            except OSError as e:
                logger.error("Failed to delete expired export file %s: %s", name, e)
                export_gc_failures_total.inc()
                report.failed_files.append(name)
                continue

            logger.info("Deleted expired export file %s", name)
            export_gc_deleted_files_total.inc()
            report.deleted_files.append(name)

    @staticmethod
    def _reconcilable(candidates: list[ExpiredExport], failed_files: list[str]) -> list[str]:
        failed = set(failed_files)
        return [c.id for c in candidates if not (c.file_name and c.file_name in failed)]
