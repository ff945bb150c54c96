"""Export date bounds.

Parses the optional ``startDate``/``endDate`` of a job descriptor into a
validated range. A date-only end bound covers that whole day.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from timefly_exports.services.errors import ExportValidationError

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class DateRange:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    # Raw strings as submitted; used for filenames and the artifact header.
    start_label: Optional[str] = None
    end_label: Optional[str] = None
    # True when ``end`` is the first instant *after* the requested range.
    end_exclusive: bool = False

    @property
    def is_closed(self) -> bool:
        return self.start is not None and self.end is not None

    def as_metadata(self) -> dict[str, str]:
        return {
            "start": self.start_label or "all-time",
            "end": self.end_label or "present",
        }


def _parse_bound(name: str, value: str) -> tuple[datetime, bool]:
    text = value.strip()
    if not text:
        raise ExportValidationError(f"{name} must not be empty")

    if _DATE_ONLY.match(text):
        try:
            day = date.fromisoformat(text)
        except ValueError as exc:
            raise ExportValidationError(f"Invalid {name}: {value!r}") from exc
        return datetime.combine(day, time.min, tzinfo=timezone.utc), True

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ExportValidationError(f"Invalid {name}: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc), False


def parse_date_range(start_date: Optional[str], end_date: Optional[str]) -> DateRange:
    """
    Validate and parse optional ISO-8601 bounds.

    Raises:
        ExportValidationError: a bound is not a parseable date/timestamp, or
            the range is inverted.
    """
    start = end = None
    end_exclusive = False

    if start_date is not None:
        start, _ = _parse_bound("startDate", start_date)
    if end_date is not None:
        end, date_only = _parse_bound("endDate", end_date)
        if date_only:
            end = end + timedelta(days=1)
            end_exclusive = True

    if start is not None and end is not None:
        if (end_exclusive and end <= start) or (not end_exclusive and end < start):
            raise ExportValidationError("startDate must not be after endDate")

    return DateRange(
        start=start,
        end=end,
        start_label=start_date.strip() if start_date is not None else None,
        end_label=end_date.strip() if end_date is not None else None,
        end_exclusive=end_exclusive,
    )
