"""Maintenance / scheduled tasks.

Hourly sweep of expired export artifacts.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

from celery.utils.log import get_task_logger

from timefly_exports.core.celery_app import celery_app
from timefly_exports.core.config import settings
from timefly_exports.core.database import AnalyticsStore
from timefly_exports.models.base import utc_now
from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.garbage_collector import ExportGarbageCollector


logger = get_task_logger(__name__)


def _run_async(coro):
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None

    if loop is not None and loop.is_running():
        new_loop = asyncio.new_event_loop()
        try:
            return new_loop.run_until_complete(coro)
        finally:
            new_loop.close()

    return asyncio.run(coro)


def _broker_enabled() -> bool:
    broker = celery_app.conf.broker_url
    return bool(broker) and not str(broker).startswith("memory://")


async def cleanup_expired_exports(
    *,
    store: Optional[AnalyticsStore] = None,
    export_dir: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Run one sweep. Opens (and disposes) its own store unless one is given."""
    now = now or utc_now()
    owned = store is None
    store = store or AnalyticsStore.from_settings()

    try:
        collector = ExportGarbageCollector(
            ArtifactStore(export_dir or settings.EXPORT_DIR),
            AuditLog(store),
        )
        report = await collector.sweep(now)
    finally:
        if owned:
            await store.dispose()

    return {
        "ok": True,
        **report.as_dict(),
        "ran_at": now.isoformat(),
    }


@celery_app.task(bind=True)
def cleanup_expired_exports_task(self):
    """Delete expired export files and mark their audit rows cleaned up.

    Note: in unit tests Celery defaults to memory:// broker; in that case this is a no-op.
    """

    if not _broker_enabled():
        return {
            "ok": True,
            "skipped": True,
            "reason": "broker_disabled",
        }

    try:
        return _run_async(cleanup_expired_exports())
    except Exception as e:
        logger.exception("Cleanup expired exports task failed")
        raise e
