"""Export pipeline errors.

Each terminal failure of an export job maps to exactly one of these; the
message is what the submitter sees in the ``error`` result message.
"""

from __future__ import annotations


class ExportError(Exception):
    pass


class ExportValidationError(ExportError, ValueError):
    """Malformed job descriptor; raised before any store is touched."""


class ExtractionError(ExportError):
    """Reading from the analytical store failed."""


class PersistenceError(ExportError):
    """Writing or finalizing the artifact file failed."""


class DeliveryError(ExportError):
    """The delivery channel rejected or failed the notification."""


class ExportTimeoutError(ExportError):
    """The job ran past its deadline."""


class AuditLogError(RuntimeError):
    """Reading or writing the export audit trail failed."""
