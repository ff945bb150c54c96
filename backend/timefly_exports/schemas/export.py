from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import EmailStr, Field

from timefly_exports.schemas.base import CamelSchema


class ExportRequest(CamelSchema):
    """Body of ``POST /exports/create``."""

    email: EmailStr = Field(..., description="Email where the export will be sent")
    start_date: Optional[str] = Field(None, description="Start of the export range (ISO-8601)")
    end_date: Optional[str] = Field(None, description="End of the export range (ISO-8601)")


class ExportResponse(CamelSchema):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class ExportFile(CamelSchema):
    filename: str
    url: str
    created_at: datetime


class ExportListResponse(CamelSchema):
    success: bool
    data: list[ExportFile] = Field(default_factory=list)
    error: Optional[str] = None


class ExportStats(CamelSchema):
    total_exports: int = 0
    total_entries: int = 0
    total_size_bytes: int = 0
    avg_processing_time_ms: float = 0.0
    failed_exports: int = 0
    cleaned_up_exports: int = 0


class ExportStatsResponse(CamelSchema):
    success: bool
    data: ExportStats


# ---------------------------------------------------------------------------
# Worker -> submitter messages
# ---------------------------------------------------------------------------


class ProgressMessage(CamelSchema):
    type: Literal["progress"] = "progress"
    processed: int


class CompleteMessage(CamelSchema):
    type: Literal["complete"] = "complete"
    total_entries: int
    download_url: str


class ErrorMessage(CamelSchema):
    type: Literal["error"] = "error"
    error: str


WorkerMessage = Annotated[
    Union[ProgressMessage, CompleteMessage, ErrorMessage],
    Field(discriminator="type"),
]


def is_terminal(message: WorkerMessage) -> bool:
    return message.type in {"complete", "error"}
