"""
Change detection and idempotent ingestion of line exports.
"""

from .file_cache import FileChangeCache
from .ingestor import IdempotentIngestor
from .scanner import LineScanner, is_export_file, resolve_line_root
from .scheduler import ScanScheduler, SchedulerState

__all__ = [
    "FileChangeCache",
    "IdempotentIngestor",
    "LineScanner",
    "ScanScheduler",
    "SchedulerState",
    "is_export_file",
    "resolve_line_root",
]
