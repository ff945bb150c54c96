from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from timefly_exports.models import ExportEvent
from timefly_exports.services.audit_log import AuditEntry
from timefly_exports.services.errors import AuditLogError
from timefly_exports.services.garbage_collector import ExportGarbageCollector


NOW = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

EXPIRED = "user-1_all-time_2024-02-20T10-00-00-aaaa.json"
ORPHAN = "user-2_all-time_2024-02-21T10-00-00-bbbb.json"
FRESH = "user-3_all-time_2024-02-29T10-00-00-cccc.json"


async def _cleaned_flags(store) -> dict[str, bool]:
    async with store.session() as session:
        rows = (await session.execute(select(ExportEvent))).scalars().all()
    return {r.id: r.cleaned_up for r in rows}


@pytest.fixture
def collector(artifacts, audit_log) -> ExportGarbageCollector:
    return ExportGarbageCollector(artifacts, audit_log)


@pytest_asyncio.fixture
async def three_files(write_artifact, audit_log):
    write_artifact(EXPIRED, NOW - timedelta(hours=2))
    write_artifact(ORPHAN, NOW - timedelta(days=1))
    write_artifact(FRESH, NOW + timedelta(days=5))

    expired_id = await audit_log.append(
        AuditEntry(user_id=1, expires_at=NOW - timedelta(hours=2), file_name=EXPIRED, entries_count=3)
    )
    fresh_id = await audit_log.append(
        AuditEntry(user_id=3, expires_at=NOW + timedelta(days=5), file_name=FRESH, entries_count=1)
    )
    return expired_id, fresh_id


@pytest.mark.asyncio
async def test_sweep_deletes_expired_and_orphaned_files(collector, artifacts, store, three_files):
    expired_id, fresh_id = three_files

    report = await collector.sweep(NOW)

    assert sorted(report.deleted_files) == sorted([EXPIRED, ORPHAN])
    assert report.failed_files == []
    assert report.candidates == 1
    assert report.marked_cleaned_up == 1
    assert artifacts.list_artifacts() == [FRESH]
    assert await _cleaned_flags(store) == {expired_id: True, fresh_id: False}


@pytest.mark.asyncio
async def test_second_sweep_changes_nothing(collector, artifacts, store, three_files):
    await collector.sweep(NOW)
    flags = await _cleaned_flags(store)

    report = await collector.sweep(NOW)

    assert report.deleted_files == []
    assert report.candidates == 0
    assert report.marked_cleaned_up == 0
    assert artifacts.list_artifacts() == [FRESH]
    assert await _cleaned_flags(store) == flags


@pytest.mark.asyncio
async def test_unexpired_files_survive_repeated_sweeps(collector, artifacts, write_artifact):
    write_artifact(FRESH, NOW + timedelta(seconds=1))

    for _ in range(3):
        await collector.sweep(NOW)

    assert artifacts.list_artifacts() == [FRESH]


@pytest.mark.asyncio
async def test_corrupt_file_does_not_abort_sweep(collector, artifacts, write_artifact):
    artifacts.ensure_directory()
    (artifacts.directory / "user-9_broken.json").write_text("{not json")
    write_artifact(ORPHAN, NOW - timedelta(days=1))

    report = await collector.sweep(NOW)

    assert report.deleted_files == [ORPHAN]
    assert report.failed_files == ["user-9_broken.json"]
    assert artifacts.list_artifacts() == ["user-9_broken.json"]


@pytest.mark.asyncio
async def test_row_is_not_marked_when_its_file_cannot_be_deleted(collector, artifacts, store, three_files):
    expired_id, _ = three_files
    real_delete = artifacts.delete

    def flaky_delete(name):
        if name == EXPIRED:
            raise PermissionError("read-only file system")
        return real_delete(name)

    with patch.object(artifacts, "delete", side_effect=flaky_delete):
        report = await collector.sweep(NOW)

    assert report.failed_files == [EXPIRED]
    assert report.deleted_files == [ORPHAN]
    assert report.marked_cleaned_up == 0
    assert (await _cleaned_flags(store))[expired_id] is False

    # Next sweep, with the file deletable again, reconciles it.
    report = await collector.sweep(NOW)
    assert report.deleted_files == [EXPIRED]
    assert (await _cleaned_flags(store))[expired_id] is True


@pytest.mark.asyncio
async def test_row_without_file_is_marked_cleaned_up(collector, audit_log, store):
    row_id = await audit_log.append(AuditEntry(user_id=4, expires_at=NOW - timedelta(days=1)))

    report = await collector.sweep(NOW)

    assert report.marked_cleaned_up == 1
    assert (await _cleaned_flags(store))[row_id] is True


@pytest.mark.asyncio
async def test_audit_query_failure_still_sweeps_files(collector, audit_log, artifacts, write_artifact, monkeypatch):
    write_artifact(ORPHAN, NOW - timedelta(days=1))
    monkeypatch.setattr(audit_log, "find_expired", AsyncMock(side_effect=AuditLogError("down")))
    monkeypatch.setattr(audit_log, "mark_cleaned_up", AsyncMock())

    report = await collector.sweep(NOW)

    assert report.candidates == 0
    assert report.deleted_files == [ORPHAN]
    audit_log.mark_cleaned_up.assert_not_awaited()


@pytest.mark.asyncio
async def test_mark_failure_is_logged_not_raised(collector, audit_log, artifacts, three_files, monkeypatch):
    monkeypatch.setattr(audit_log, "mark_cleaned_up", AsyncMock(side_effect=AuditLogError("down")))

    report = await collector.sweep(NOW)

    assert sorted(report.deleted_files) == sorted([EXPIRED, ORPHAN])
    assert report.marked_cleaned_up == 0
