"""
Core data models for the defect collector.

All models use Pydantic for runtime validation and type safety.
"""

from .defect_record import DefectRecord
from .line_config import LineConfig
from .scan_result import (
    CycleSummary,
    FileIngestResult,
    FileOutcome,
    LineScanResult,
    LineStatus,
    RejectReason,
)

__all__ = [
    "DefectRecord",
    "LineConfig",
    "RejectReason",
    "FileOutcome",
    "FileIngestResult",
    "LineStatus",
    "LineScanResult",
    "CycleSummary",
]
