from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from timefly_exports.api.deps import (
    get_artifact_store,
    get_audit_log,
    get_current_user_id,
    get_job_runner,
)
from timefly_exports.core.config import settings
from timefly_exports.schemas.export import (
    ExportFile,
    ExportListResponse,
    ExportRequest,
    ExportResponse,
    ExportStats,
    ExportStatsResponse,
)
from timefly_exports.services.artifact_store import ArtifactStore, InvalidArtifactNameError
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.date_range import parse_date_range
from timefly_exports.services.errors import AuditLogError, ExportValidationError
from timefly_exports.services.export_job import ExportJob, ExportJobRunner, download_url_for

logger = logging.getLogger(__name__)

router = APIRouter()

_OWNED_NAME = re.compile(r"^user-(\d+)_[^/\\]*\.json$")
_NAME_TIMESTAMP = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}")

_NO_CACHE_HEADERS = {
    "Cache-Control": "private, no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _owned_path(artifacts: ArtifactStore, filename: str, user_id: int, action: str):
    match = _OWNED_NAME.match(filename)
    if not match:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file format")
    if int(match.group(1)) != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You do not have permission to {action} this file",
        )
    try:
        return artifacts.path_for(filename)
    except InvalidArtifactNameError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path")


def _created_at(artifacts: ArtifactStore, filename: str) -> datetime:
    # The job timestamp is the last one in the name; range labels may contain others.
    stamps = _NAME_TIMESTAMP.findall(filename)
    if stamps:
        return datetime.strptime(stamps[-1], "%Y-%m-%dT%H-%M-%S").replace(tzinfo=timezone.utc)
    mtime = artifacts.path_for(filename).stat().st_mtime
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


@router.post("/create", response_model=ExportResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_export(
    body: ExportRequest,
    user_id: int = Depends(get_current_user_id),
    runner: ExportJobRunner = Depends(get_job_runner),
):
    """Start an export job; the download link is e-mailed when it finishes."""
    if not settings.email_configured:
        logger.error("RESEND_API_KEY is not set; export cannot proceed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Export service is not properly configured.",
        )

    try:
        parse_date_range(body.start_date, body.end_date)
    except ExportValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    job = ExportJob(
        user_id=user_id,
        email=str(body.email),
        start_date=body.start_date,
        end_date=body.end_date,
    )
    runner.submit_detached(job)
    logger.info("Export job %s started for user %s", job.id, user_id)

    return ExportResponse(
        success=True,
        message="Export started. You will receive an email when it's complete.",
    )


@router.get("/download/{filename}")
async def download_export(
    filename: str,
    user_id: int = Depends(get_current_user_id),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    path = _owned_path(artifacts, filename, user_id, "access")
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(
        path,
        media_type="application/json",
        filename=filename,
        headers=_NO_CACHE_HEADERS,
    )


@router.get("/list", response_model=ExportListResponse)
async def list_exports(
    user_id: int = Depends(get_current_user_id),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    prefix = f"user-{user_id}_"
    try:
        files = [
            ExportFile(
                filename=name,
                url=download_url_for(name, settings.BASE_URL),
                created_at=_created_at(artifacts, name),
            )
            for name in artifacts.list_artifacts()
            if name.startswith(prefix)
        ]
    except OSError:
        logger.exception("Failed to list exports for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error listing exports"
        )

    files.sort(key=lambda f: f.created_at, reverse=True)
    return ExportListResponse(success=True, data=files)


@router.delete("/delete/{filename}", response_model=ExportResponse)
async def delete_export(
    filename: str,
    user_id: int = Depends(get_current_user_id),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    _owned_path(artifacts, filename, user_id, "delete")
    try:
        deleted = artifacts.delete(filename)
    except OSError:
        logger.exception("Failed to delete export %s", filename)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting file"
        )
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return ExportResponse(success=True, message="File deleted successfully")


@router.get("/stats", response_model=ExportStatsResponse)
async def export_stats(
    user_id: int = Depends(get_current_user_id),
    audit_log: AuditLog = Depends(get_audit_log),
):
    try:
        summary = await audit_log.summarize(user_id)
    except AuditLogError:
        logger.exception("Failed to load export stats for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error loading export stats"
        )

    return ExportStatsResponse(
        success=True,
        data=ExportStats(
            total_exports=summary.total_exports,
            total_entries=summary.total_entries,
            total_size_bytes=summary.total_size_bytes,
            avg_processing_time_ms=summary.avg_processing_time_ms,
            failed_exports=summary.failed_exports,
            cleaned_up_exports=summary.cleaned_up_exports,
        ),
    )
