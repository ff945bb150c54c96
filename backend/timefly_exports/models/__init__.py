"""
SQLAlchemy Models
=================

Imported here so ``Base.metadata`` knows every table.
"""

from timefly_exports.models.base import Base
from timefly_exports.models.export_event import ExportEvent
from timefly_exports.models.time_entry import TimeEntry

__all__ = [
    "Base",
    "ExportEvent",
    "TimeEntry",
]
