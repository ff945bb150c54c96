"""Artifact writer.

Streams extraction pages straight into the export file instead of holding
the whole export in memory. The resulting document is::

    {"userId": ..., "exportDate": ..., "dateRange": {...}, "entries": [...], "expiresAt": ...}

``expiresAt`` is decided by the caller when the job starts and is written
last, when the file is finalized and moved to its public name.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Iterable, Optional

from timefly_exports.services.artifact_store import ARTIFACT_SUFFIX, ArtifactStore
from timefly_exports.services.date_range import DateRange
from timefly_exports.services.errors import PersistenceError
from timefly_exports.services.extraction_cursor import ExportRecord

logger = logging.getLogger(__name__)

_JSON_SEPARATORS = (",", ":")


def _filename_part(label: str) -> str:
    return label.replace(":", "-").replace("/", "-").replace(" ", "_")


def build_file_name(
    *,
    user_id: int,
    date_range: DateRange,
    created_at: datetime,
    suffix: Optional[str] = None,
) -> str:
    """
    ``user-{id}{_<start>_to_<end>|_all-time}_{timestamp}-{suffix}.json``

    Only a range with both ends gets its own name part; an open-ended range
    is named ``all-time`` like an unbounded one. The random suffix keeps
    same-second exports of the same range apart.
    """
    if date_range.is_closed:
        meta = date_range.as_metadata()
        range_part = f"_{_filename_part(meta['start'])}_to_{_filename_part(meta['end'])}"
    else:
        range_part = "_all-time"

    timestamp = created_at.strftime("%Y-%m-%dT%H-%M-%S")
    suffix = suffix or secrets.token_hex(4)
    return f"user-{user_id}{range_part}_{timestamp}-{suffix}{ARTIFACT_SUFFIX}"


@dataclass(frozen=True)
class ArtifactInfo:
    file_name: str
    size_bytes: int
    entries_count: int
    expires_at: datetime


class ArtifactWriter:
    """
    Incremental writer for one export file.

    Call ``open()``, then ``write_page()`` for every extraction page, then
    ``finalize()``. ``abort()`` removes the temporary file; it is safe to call
    at any point. All I/O failures surface as ``PersistenceError``.
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        user_id: int,
        date_range: DateRange,
        created_at: datetime,
        expires_at: datetime,
        file_name: Optional[str] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.date_range = date_range
        self.created_at = created_at
        self.expires_at = expires_at
        self.file_name = file_name or build_file_name(
            user_id=user_id, date_range=date_range, created_at=created_at
        )
        self.entries_count = 0

        self._partial: Optional[Path] = None
        self._fh: Optional[IO[str]] = None

    def open(self) -> None:
        header = {
            "userId": self.user_id,
            "exportDate": self.created_at.isoformat(),
            "dateRange": self.date_range.as_metadata(),
        }
        try:
            self._partial, self._fh = self.store.open_partial(self.file_name)
            # Drop the closing brace; entries and expiresAt follow.
            self._fh.write(json.dumps(header, separators=_JSON_SEPARATORS)[:-1])
            self._fh.write(',"entries":[')
        except OSError as exc:
            self.abort()
            raise PersistenceError(f"Failed to create export file: {exc}") from exc

    def write_page(self, records: Iterable[ExportRecord]) -> None:
        if self._fh is None:
            raise RuntimeError("ArtifactWriter.open() must be called first")
        try:
            for record in records:
                if self.entries_count:
                    self._fh.write(",")
                self._fh.write(json.dumps(record.to_dict(), separators=_JSON_SEPARATORS))
                self.entries_count += 1
        except OSError as exc:
            self.abort()
            raise PersistenceError(f"Failed to write export file: {exc}") from exc

    def finalize(self) -> ArtifactInfo:
        if self._fh is None or self._partial is None:
            raise RuntimeError("ArtifactWriter.open() must be called first")
        try:
            self._fh.write('],"expiresAt":')
            self._fh.write(json.dumps(self.expires_at.isoformat()))
            self._fh.write("}")
            self._fh.close()
            self._fh = None

            size = self._partial.stat().st_size
            self.store.commit_partial(self._partial, self.file_name)
            self._partial = None
        except OSError as exc:
            self.abort()
            raise PersistenceError(f"Failed to save export file: {exc}") from exc

        logger.info("Export file saved: %s (%d bytes, %d entries)", self.file_name, size, self.entries_count)
        return ArtifactInfo(
            file_name=self.file_name,
            size_bytes=size,
            entries_count=self.entries_count,
            expires_at=self.expires_at,
        )

    def abort(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                logger.warning("Failed to close partial export file %s", self._partial)
            self._fh = None
        if self._partial is not None:
            try:
                self.store.discard_partial(self._partial)
            except OSError:
                logger.exception("Failed to remove partial export file %s", self._partial)
            self._partial = None
