from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from celery.schedules import crontab

from timefly_exports.core.celery_app import celery_app
from timefly_exports.services.audit_log import AuditEntry
from timefly_exports.tasks.maintenance import cleanup_expired_exports, cleanup_expired_exports_task


def test_cleanup_task_noops_with_memory_broker():
    # In unit tests Celery defaults to memory:// broker; task should be a safe no-op.
    res = cleanup_expired_exports_task.run()
    assert isinstance(res, dict)
    assert res.get("ok") is True
    assert res.get("skipped") is True
    assert res.get("reason") == "broker_disabled"


def test_cleanup_is_scheduled_hourly_on_maintenance_queue():
    entry = celery_app.conf.beat_schedule["cleanup-expired-exports"]
    assert entry["task"] == cleanup_expired_exports_task.name
    assert entry["schedule"] == crontab(minute=0)
    assert celery_app.conf.task_routes[cleanup_expired_exports_task.name] == {"queue": "q.maintenance"}


@pytest.mark.asyncio
async def test_cleanup_sweeps_with_given_store(store, audit_log, artifacts, write_artifact):
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    write_artifact("user-1_all-time_2024-02-01T00-00-00-aa.json", now - timedelta(days=1))
    await audit_log.append(
        AuditEntry(user_id=1, expires_at=now - timedelta(days=1), file_name="user-1_all-time_2024-02-01T00-00-00-aa.json")
    )

    result = await cleanup_expired_exports(store=store, export_dir=str(artifacts.directory), now=now)

    assert result["ok"] is True
    assert result["candidates"] == 1
    assert result["deleted_files"] == 1
    assert result["marked_cleaned_up"] == 1
    assert artifacts.list_artifacts() == []
