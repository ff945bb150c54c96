"""Pytest configuration.

Settings are environment-based; set minimal test defaults here before
importing the package so that tests never pick up a developer ``.env``.

The analytical store is a throwaway SQLite file per test (``aiosqlite``).
"""

import os


os.environ.setdefault("APP_NAME", "TimeFly Exports")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_PREFIX", "")
os.environ.setdefault("BASE_URL", "https://api.timefly.test")
os.environ.setdefault("EMAIL_FROM", "TimeFly <exports@timefly.test>")
# Keep Celery on the in-memory broker; scheduled tasks become no-ops.
os.environ.pop("CELERY_BROKER_URL", None)

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

import pytest
import pytest_asyncio

from timefly_exports.core.config import settings
from timefly_exports.core.database import AnalyticsStore
from timefly_exports.models import TimeEntry
from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.export_job import ExportJobCoordinator
from timefly_exports.services.notifier import DeliveryReceipt


JOB_START = datetime(2024, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class SentEmail:
    sender: str
    to: str
    subject: str
    html: str


@dataclass
class FakeNotifier:
    """Records every send; answers with ``receipt`` (or waits on ``gate``)."""

    receipt: DeliveryReceipt = field(default_factory=lambda: DeliveryReceipt(id="email_123"))
    gate: Optional[asyncio.Event] = None
    sent: list = field(default_factory=list)

    async def send(self, *, sender: str, to: str, subject: str, html: str) -> DeliveryReceipt:
        if self.gate is not None:
            await self.gate.wait()
        self.sent.append(SentEmail(sender=sender, to=to, subject=subject, html=html))
        return self.receipt


class MessageRecorder:
    def __init__(self):
        self.messages = []

    async def __call__(self, message) -> None:
        self.messages.append(message)

    @property
    def types(self) -> list[str]:
        return [m.type for m in self.messages]


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    analytics = AnalyticsStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}")
    await analytics.create_tables()
    yield analytics
    await analytics.dispose()


@pytest.fixture
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "exports")


@pytest.fixture
def audit_log(store: AnalyticsStore) -> AuditLog:
    return AuditLog(store)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def recorder() -> MessageRecorder:
    return MessageRecorder()


@pytest.fixture
def export_settings():
    return settings.model_copy(
        update={
            "EXPORT_BATCH_SIZE": 1000,
            "EXPORT_RETENTION_DAYS": 7,
            "EXPORT_JOB_DEADLINE_SECONDS": None,
            "BASE_URL": "https://api.timefly.test",
        }
    )


@pytest.fixture
def make_coordinator(store, artifacts, audit_log, notifier, export_settings):
    def _make(**overrides) -> ExportJobCoordinator:
        config = export_settings.model_copy(update=overrides) if overrides else export_settings
        return ExportJobCoordinator(
            store=store,
            artifacts=artifacts,
            notifier=notifier,
            audit_log=audit_log,
            settings=config,
            clock=lambda: JOB_START,
        )

    return _make


@pytest.fixture
def seed_entries(store: AnalyticsStore) -> Callable[..., Awaitable[list[TimeEntry]]]:
    """Insert ``count`` entries for ``user_id``, one per minute from ``start``."""

    async def _seed(
        *,
        user_id: int,
        count: int,
        start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        step: timedelta = timedelta(minutes=1),
        duration: timedelta = timedelta(seconds=30),
    ) -> list[TimeEntry]:
        rows = [
            TimeEntry(
                user_id=user_id,
                entity=f"/home/dev/project/src/file_{i}.py",
                type="file",
                category="coding",
                start_time=start + step * i,
                end_time=start + step * i + duration,
                project="timefly",
                branch="main",
                language="Python",
                dependencies="fastapi,sqlalchemy",
                machine_name_id="machine-1",
                line_additions=i % 7,
                line_deletions=i % 3,
                lines=100 + i,
                is_write=i % 2 == 0,
            )
            for i in range(count)
        ]
        async with store.session() as session:
            async with session.begin():
                session.add_all(rows)
        return rows

    return _seed


@pytest.fixture
def write_artifact(artifacts: ArtifactStore) -> Callable[..., str]:
    """Drop a finished artifact with the given ``expiresAt`` into the store."""

    def _write(name: str, expires_at: datetime, *, user_id: int = 1) -> str:
        artifacts.ensure_directory()
        payload = {
            "userId": user_id,
            "exportDate": (expires_at - timedelta(days=7)).isoformat(),
            "dateRange": {"start": "all-time", "end": "present"},
            "entries": [],
            "expiresAt": expires_at.isoformat(),
        }
        (artifacts.directory / name).write_text(json.dumps(payload), encoding="utf-8")
        return name

    return _write
