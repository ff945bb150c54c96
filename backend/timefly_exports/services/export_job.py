"""Export job coordination.

``ExportJobCoordinator`` drives one job through its states::

    received -> extracting -> persisting -> notifying -> logging -> completed
                     \\             \\            \\
                      `-------------`------------`--> failed (logging still runs)

and reports to the submitter only through messages: a progress message after
every extraction page, then exactly one ``complete`` or ``error`` message.

``ExportJobRunner`` runs coordinators as asyncio tasks and hands the
submitter an ``ExportJobHandle`` to read those messages from.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from timefly_exports.core.config import Settings, settings as default_settings
from timefly_exports.core.database import AnalyticsStore
from timefly_exports.core.logging import get_export_logger
from timefly_exports.core.metrics import (
    export_artifact_bytes_total,
    export_entries_total,
    export_job_duration_seconds,
    export_jobs_total,
)
from timefly_exports.models.base import generate_uuid, utc_now
from timefly_exports.schemas.export import (
    CompleteMessage,
    ErrorMessage,
    ProgressMessage,
    WorkerMessage,
    is_terminal,
)
from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.artifact_writer import ArtifactInfo, ArtifactWriter
from timefly_exports.services.audit_log import AuditEntry, AuditLog
from timefly_exports.services.date_range import DateRange, parse_date_range
from timefly_exports.services.errors import (
    AuditLogError,
    DeliveryError,
    ExportError,
    ExportTimeoutError,
    ExportValidationError,
)
from timefly_exports.services.extraction_cursor import ExtractionCursor
from timefly_exports.services.notifier import Notifier
from timefly_exports.templates.export_email import EXPORT_EMAIL_SUBJECT, render_export_email

logger = logging.getLogger(__name__)

T = TypeVar("T")

MessageSink = Callable[[WorkerMessage], Awaitable[None]]

INTERNAL_ERROR_MESSAGE = "Export failed due to an internal error"
CANCELLED_MESSAGE = "Export cancelled"


class JobState(str, Enum):
    RECEIVED = "received"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    LOGGING = "logging"
    COMPLETED = "completed"
    FAILED = "failed"


_STATE_ORDER = {state: i for i, state in enumerate(JobState)}


class InvalidTransitionError(RuntimeError):
    pass


@dataclass
class ExportJob:
    """Job descriptor plus its current state. Lives only as long as the job."""

    user_id: int
    email: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    id: str = field(default_factory=generate_uuid)
    state: JobState = JobState.RECEIVED

    @property
    def failed(self) -> bool:
        return self.state is JobState.FAILED

    def advance(self, state: JobState) -> None:
        """Move forward. ``failed`` is reachable from any non-terminal state."""
        if self.state in (JobState.COMPLETED, JobState.FAILED):
            raise InvalidTransitionError(f"Job {self.id} already {self.state.value}")
        if state is not JobState.FAILED and _STATE_ORDER[state] <= _STATE_ORDER[self.state]:
            raise InvalidTransitionError(f"Cannot move job {self.id} from {self.state.value} to {state.value}")
        self.state = state


def download_url_for(file_name: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/exports/download/{file_name}"


class _Deadline:
    def __init__(self, seconds: Optional[float]):
        self._expires = time.monotonic() + seconds if seconds else None

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return self._expires - time.monotonic()

    async def run(self, awaitable: Awaitable[T], step: str) -> T:
        remaining = self.remaining()
        if remaining is None:
            return await awaitable
        if remaining <= 0:
            # Close the coroutine so it is not reported as never awaited.
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise ExportTimeoutError(f"Export timed out before {step}")
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise ExportTimeoutError(f"Export timed out during {step}") from e

    def check(self, step: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ExportTimeoutError(f"Export timed out during {step}")


class ExportJobCoordinator:
    """
    Runs export jobs end to end.

    One coordinator can serve many concurrent jobs; all per-job state lives
    on the stack of ``run()``.
    """

    def __init__(
        self,
        *,
        store: AnalyticsStore,
        artifacts: ArtifactStore,
        notifier: Notifier,
        audit_log: Optional[AuditLog] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.artifacts = artifacts
        self.notifier = notifier
        self.audit_log = audit_log or AuditLog(store)
        self.settings = settings or default_settings
        self.clock = clock

    async def run(self, job: ExportJob, emit: MessageSink) -> WorkerMessage:
        """Run ``job`` to a terminal state and return the terminal message."""
        log = get_export_logger(job_id=job.id, user_id=job.user_id)

        try:
            date_range = parse_date_range(job.start_date, job.end_date)
        except ExportValidationError as e:
            job.advance(JobState.FAILED)
            log.warning("export_rejected", error=str(e))
            export_jobs_total.labels(outcome="rejected").inc()
            message = ErrorMessage(error=str(e))
            await emit(message)
            return message

        started_at = self.clock()
        started = time.perf_counter()
        expires_at = started_at + timedelta(days=self.settings.EXPORT_RETENTION_DAYS)
        deadline = _Deadline(self.settings.EXPORT_JOB_DEADLINE_SECONDS)

        log.info(
            "export_started",
            start=date_range.as_metadata()["start"],
            end=date_range.as_metadata()["end"],
        )

        writer = ArtifactWriter(
            self.artifacts,
            user_id=job.user_id,
            date_range=date_range,
            created_at=started_at,
            expires_at=expires_at,
        )
        info: Optional[ArtifactInfo] = None
        download_url: Optional[str] = None
        email_sent = False
        error_message = ""

        try:
            job.advance(JobState.EXTRACTING)
            await self._extract(job, date_range, writer, deadline, emit)

            job.advance(JobState.PERSISTING)
            deadline.check("persisting")
            info = writer.finalize()
            download_url = download_url_for(info.file_name, self.settings.BASE_URL)

            job.advance(JobState.NOTIFYING)
            await self._notify(job, info, date_range, started_at, download_url, deadline)
            email_sent = True
        except ExportError as e:
            error_message = str(e) or e.__class__.__name__
            writer.abort()
            job.advance(JobState.FAILED)
            log.warning("export_failed", error_type=e.__class__.__name__, error=error_message)
        except asyncio.CancelledError:
            writer.abort()
            job.advance(JobState.FAILED)
            log.warning("export_cancelled")
            # The audit row must land even though this task is being torn down.
            await asyncio.shield(
                self._record(
                    job,
                    date_range=date_range,
                    started_at=started_at,
                    expires_at=expires_at,
                    info=info,
                    email_sent=False,
                    error_message=CANCELLED_MESSAGE,
                    processing_time_ms=int((time.perf_counter() - started) * 1000),
                )
            )
            export_jobs_total.labels(outcome="cancelled").inc()
            raise
        except Exception:
            error_message = INTERNAL_ERROR_MESSAGE
            writer.abort()
            job.advance(JobState.FAILED)
            log.exception("export_crashed")

        if not job.failed:
            job.advance(JobState.LOGGING)

        elapsed = time.perf_counter() - started
        await self._record(
            job,
            date_range=date_range,
            started_at=started_at,
            expires_at=expires_at,
            info=info,
            email_sent=email_sent,
            error_message=error_message,
            processing_time_ms=int(elapsed * 1000),
        )

        if job.failed:
            outcome = "delivery_failed" if info is not None else "failed"
            message: WorkerMessage = ErrorMessage(error=error_message)
        else:
            job.advance(JobState.COMPLETED)
            outcome = "completed"
            export_entries_total.inc(info.entries_count)
            export_artifact_bytes_total.inc(info.size_bytes)
            message = CompleteMessage(total_entries=info.entries_count, download_url=download_url)
            log.info(
                "export_completed",
                entries=info.entries_count,
                size_bytes=info.size_bytes,
                file_name=info.file_name,
                duration_ms=int(elapsed * 1000),
            )

        export_jobs_total.labels(outcome=outcome).inc()
        export_job_duration_seconds.labels(outcome=outcome).observe(elapsed)
        await emit(message)
        return message

    async def _extract(
        self,
        job: ExportJob,
        date_range: DateRange,
        writer: ArtifactWriter,
        deadline: _Deadline,
        emit: MessageSink,
    ) -> None:
        cursor = ExtractionCursor(
            self.store,
            user_id=job.user_id,
            date_range=date_range,
            page_size=self.settings.EXPORT_BATCH_SIZE,
        )
        writer.open()
        pages = cursor.pages()
        try:
            while True:
                try:
                    page = await deadline.run(pages.__anext__(), "extraction")
                except StopAsyncIteration:
                    break
                deadline.check("file write")
                writer.write_page(page)
                await emit(ProgressMessage(processed=writer.entries_count))
        finally:
            await pages.aclose()

    async def _notify(
        self,
        job: ExportJob,
        info: ArtifactInfo,
        date_range: DateRange,
        started_at: datetime,
        download_url: str,
        deadline: _Deadline,
    ) -> None:
        html = render_export_email(
            total_entries=info.entries_count,
            download_url=download_url,
            export_date=started_at,
            expires_at=info.expires_at,
            file_size_bytes=info.size_bytes,
            start_date=date_range.start_label,
            end_date=date_range.end_label,
        )
        receipt = await deadline.run(
            self.notifier.send(
                sender=self.settings.EMAIL_FROM,
                to=job.email,
                subject=EXPORT_EMAIL_SUBJECT,
                html=html,
            ),
            "notification",
        )
        if not receipt.ok:
            raise DeliveryError(receipt.error or "Email delivery failed")
        logger.info("Export e-mail sent to user %s (message id %s)", job.user_id, receipt.id)

    async def _record(
        self,
        job: ExportJob,
        *,
        date_range: DateRange,
        started_at: datetime,
        expires_at: datetime,
        info: Optional[ArtifactInfo],
        email_sent: bool,
        error_message: str,
        processing_time_ms: int,
    ) -> None:
        entry = AuditEntry(
            user_id=job.user_id,
            timestamp=started_at,
            # A failed job reports no exported entries, even when its file was kept.
            entries_count=info.entries_count if info is not None and not error_message else 0,
            file_size_bytes=info.size_bytes if info is not None else 0,
            processing_time_ms=processing_time_ms,
            start_date=date_range.start,
            end_date=date_range.end,
            expires_at=expires_at,
            email_sent=email_sent,
            error_message=error_message,
            file_name=info.file_name if info is not None else None,
        )
        try:
            await self.audit_log.append(entry)
        except AuditLogError:
            logger.exception("Failed to record export event for job %s", job.id)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class ExportJobHandle:
    """
    Submitter side of a running job.

    ``async for message in handle`` yields every message up to and including
    the terminal one. ``wait()`` returns the terminal message.
    """

    def __init__(self, job: ExportJob, queue: "asyncio.Queue[WorkerMessage]"):
        self.job = job
        self._queue = queue
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def messages(self) -> AsyncIterator[WorkerMessage]:
        while True:
            message = await self._queue.get()
            yield message
            if is_terminal(message):
                return

    def __aiter__(self) -> AsyncIterator[WorkerMessage]:
        return self.messages()

    async def wait(self) -> WorkerMessage:
        if self._task is None:
            raise RuntimeError("job not submitted")
        return await asyncio.shield(self._task)


class ExportJobRunner:
    """Runs export jobs as independent asyncio tasks."""

    def __init__(self, coordinator: ExportJobCoordinator):
        self.coordinator = coordinator
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def submit(self, job: ExportJob) -> ExportJobHandle:
        queue: asyncio.Queue[WorkerMessage] = asyncio.Queue()
        handle = ExportJobHandle(job, queue)
        task = asyncio.create_task(self.coordinator.run(job, queue.put), name=f"export-{job.id}")
        handle._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    def submit_detached(self, job: ExportJob) -> ExportJobHandle:
        """Submit a job nobody listens to; its messages go to the log."""
        handle = self.submit(job)
        consumer = asyncio.create_task(_drain(handle), name=f"export-log-{job.id}")
        self._tasks.add(consumer)
        consumer.add_done_callback(self._tasks.discard)
        return handle

    async def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        """Wait for in-flight jobs, then cancel whatever is still running."""
        if not self._tasks:
            return
        grace = default_settings.EXPORT_SHUTDOWN_GRACE_SECONDS if grace_seconds is None else grace_seconds
        pending = set(self._tasks)
        logger.info("Waiting up to %.1fs for %d export task(s)", grace, len(pending))
        _, still_running = await asyncio.wait(pending, timeout=grace)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d export task(s) at shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)


async def _drain(handle: ExportJobHandle) -> None:
    async for message in handle:
        if isinstance(message, ProgressMessage):
            logger.debug("Export %s progress: %d entries", handle.job.id, message.processed)
        elif isinstance(message, ErrorMessage):
            logger.warning("Export %s failed: %s", handle.job.id, message.error)
        else:
            logger.info("Export %s complete: %s", handle.job.id, message.download_url)
