"""Artifact store.

Local-disk file store for export artifacts: write, read, list and delete
over one fixed directory. Names are validated so that nothing outside the
directory can be reached.

Artifacts are written under a hidden ``.<name>.partial`` name and renamed into
place once complete, so ``list_artifacts()`` never sees a half-written file.
"""

from __future__ import annotations

import json
import os
import re
from datetime import datetime
from pathlib import Path
from typing import IO

from timefly_exports.models.base import as_utc

ARTIFACT_SUFFIX = ".json"
PARTIAL_SUFFIX = ".partial"

_TAIL_BYTES = 256
_TRAILING_EXPIRES_AT = re.compile(rb'"expiresAt"\s*:\s*"([^"]+)"\s*}\s*$')


class InvalidArtifactNameError(ValueError):
    pass


class ArtifactStore:
    def __init__(self, directory: str | os.PathLike[str]):
        self.directory = Path(directory)

    def ensure_directory(self) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def path_for(self, name: str) -> Path:
        if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
            raise InvalidArtifactNameError(f"Invalid artifact name: {name!r}")

        root = self.directory.resolve()
        path = (root / name).resolve()
        if path.parent != root:
            raise InvalidArtifactNameError(f"Invalid artifact name: {name!r}")
        return path

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def open_partial(self, name: str) -> tuple[Path, IO[str]]:
        """Open a hidden temporary file that will become ``name``."""
        self.ensure_directory()
        final = self.path_for(name)
        partial = final.with_name(f".{final.name}{PARTIAL_SUFFIX}")
        return partial, partial.open("w", encoding="utf-8")

    def commit_partial(self, partial: Path, name: str) -> Path:
        final = self.path_for(name)
        os.replace(partial, final)
        return final

    def discard_partial(self, partial: Path) -> None:
        partial.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def list_artifacts(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.directory.iterdir()
            if entry.is_file()
            and entry.name.endswith(ARTIFACT_SUFFIX)
            and not entry.name.startswith(".")
        )

    def read(self, name: str) -> bytes:
        return self.path_for(name).read_bytes()

    def read_expires_at(self, name: str) -> datetime:
        """
        Return the ``expiresAt`` embedded in an artifact.

        Exports end with ``"expiresAt": "..."}``, so only the tail of the file
        is read. Documents with a different layout are parsed in full.

        Raises:
            OSError: the file cannot be read.
            ValueError: the file is not an artifact or has no usable expiry.
        """
        path = self.path_for(name)
        with path.open("rb") as f:
            f.seek(0, os.SEEK_END)
            f.seek(max(f.tell() - _TAIL_BYTES, 0))
            match = _TRAILING_EXPIRES_AT.search(f.read())

        if match is not None:
            raw = match.group(1).decode("utf-8")
        else:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
            raw = payload.get("expiresAt") if isinstance(payload, dict) else None
        if not isinstance(raw, str):
            raise ValueError(f"{name} has no expiresAt")
        return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))

    # ------------------------------------------------------------------
    # Deleting
    # ------------------------------------------------------------------

    def delete(self, name: str) -> bool:
        """Delete an artifact. Returns False if it was already gone."""
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            return False
        return True
