"""
Outcome models reported by the parser, ingestor, scanner and scheduler (ephemeral).

Failures are contained at the smallest scope (row, file, line) and surface
upward only through these results, never as exceptions.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RejectReason(str, Enum):
    """Why a CSV row did not produce a record."""

    BLANK = "blank"
    TOO_FEW_COLUMNS = "too_few_columns"
    INVALID_DATE = "invalid_date"


class FileOutcome(str, Enum):
    """
    Result of ingesting one file.

    Only PROCESSED allows the file to be marked in the change cache.
    """

    PROCESSED = "processed"
    OPEN_FAILED = "open_failed"
    PARTIAL = "partial"
    FAILED = "failed"


class LineStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"
    ERROR = "error"


class FileIngestResult(BaseModel):
    """
    Counts collected while ingesting a single file.

    Attributes:
        path: File that was ingested
        table: Destination table
        outcome: Overall outcome for the file
        rows_read: Data rows read (header excluded, blank lines excluded)
        rows_rejected: Rejected rows per RejectReason value
        inserted: Records inserted
        duplicates: Records skipped because the identity already exists
        insert_failures: Records whose existence check or insert failed
        error: Error message for OPEN_FAILED/FAILED outcomes
    """

    path: str
    table: str
    outcome: FileOutcome = FileOutcome.PROCESSED
    rows_read: int = 0
    rows_rejected: dict[str, int] = Field(default_factory=dict)
    inserted: int = 0
    duplicates: int = 0
    insert_failures: int = 0
    error: str | None = None

    @property
    def rejected_total(self) -> int:
        return sum(self.rows_rejected.values())

    def reject(self, reason: RejectReason) -> None:
        self.rows_rejected[reason.value] = self.rows_rejected.get(reason.value, 0) + 1


class LineScanResult(BaseModel):
    """
    Summary of one scan of one line.

    Attributes:
        line: Line name
        status: Line-level status
        root: Resolved share folder (None when the line was skipped)
        files_ignored: CSV files not matching the export naming convention
        files_unchanged: Matching files skipped by the change cache
        files: Per-file results for files handed to the ingestor
        error: Error message for UNREACHABLE/ERROR statuses
    """

    line: str
    status: LineStatus = LineStatus.OK
    root: str | None = None
    files_ignored: int = 0
    files_unchanged: int = 0
    files: list[FileIngestResult] = Field(default_factory=list)
    error: str | None = None

    @property
    def files_processed(self) -> int:
        return sum(1 for f in self.files if f.outcome == FileOutcome.PROCESSED)

    @property
    def files_failed(self) -> int:
        return sum(1 for f in self.files if f.outcome != FileOutcome.PROCESSED)

    @property
    def inserted(self) -> int:
        return sum(f.inserted for f in self.files)

    @property
    def duplicates(self) -> int:
        return sum(f.duplicates for f in self.files)


class CycleSummary(BaseModel):
    """Aggregate of all line scans in one scheduler cycle."""

    cycle: int
    started_at: datetime
    finished_at: datetime | None = None
    lines: list[LineScanResult] = Field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def inserted(self) -> int:
        return sum(line.inserted for line in self.lines)

    @property
    def duplicates(self) -> int:
        return sum(line.duplicates for line in self.lines)

    @property
    def files_processed(self) -> int:
        return sum(line.files_processed for line in self.lines)

    @property
    def files_failed(self) -> int:
        return sum(line.files_failed for line in self.lines)

    @property
    def lines_failed(self) -> int:
        return sum(
            1 for line in self.lines
            if line.status in (LineStatus.UNREACHABLE, LineStatus.ERROR)
        )

    def line(self, name: str) -> LineScanResult | None:
        for result in self.lines:
            if result.line == name:
                return result
        return None
