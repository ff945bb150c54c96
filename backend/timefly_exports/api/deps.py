"""
API Dependencies
================

Request-scoped access to the caller identity and to the long-lived
objects the application opens at startup (stored on ``app.state``).
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.export_job import ExportJobRunner


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> int:
    """
    Authenticated user id, as forwarded by the upstream auth layer.

    Raises:
        HTTPException: 401 if the header is missing or not an integer
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.artifacts


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit_log


def get_job_runner(request: Request) -> ExportJobRunner:
    return request.app.state.runner
