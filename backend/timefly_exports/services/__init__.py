"""
Services module initialization.
"""

from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.export_job import ExportJob, ExportJobCoordinator, ExportJobRunner
from timefly_exports.services.garbage_collector import ExportGarbageCollector
from timefly_exports.services.notifier import ResendNotifier

__all__ = [
    "ArtifactStore",
    "AuditLog",
    "ExportJob",
    "ExportJobCoordinator",
    "ExportJobRunner",
    "ExportGarbageCollector",
    "ResendNotifier",
]
