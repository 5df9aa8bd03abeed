"""
CSV row parser for line machine exports.

Export rows are flat comma-separated text with no quoting:

    dd/MM/yyyy, line, model, defect, reason, station, quantity

Parsing is lenient on quantity (anything unparsable becomes 0) and strict on
the date (the row is rejected).
"""

import re
from dataclasses import dataclass
from datetime import date, datetime

from defect_collector.core.models import DefectRecord, RejectReason

MIN_COLUMNS = 7
DATE_FORMAT = "%d/%m/%Y"

_DATE_SHAPE = re.compile(r"^\d{2}/\d{2}/\d{4}$", re.ASCII)
_INTEGER = re.compile(r"^[+-]?\d+$", re.ASCII)

# Destination Quantity columns are 32-bit INTEGER
MAX_QUANTITY = 2**31 - 1


@dataclass(frozen=True)
class ParseResult:
    """Either a parsed record or the reason the row was rejected."""

    record: DefectRecord | None = None
    reason: RejectReason | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


def parse_date(value: str) -> date | None:
    """
    Parse ``dd/MM/yyyy`` exactly.

    ``strptime`` alone would also accept ``1/2/2025``; the shape check keeps
    the two-digit day and month the exporters write.
    """
    if not _DATE_SHAPE.match(value):
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def parse_quantity(value: str) -> int:
    """
    Parse a quantity, falling back to 0 for anything that is not an integer
    between 0 and MAX_QUANTITY.
    """
    value = value.strip()
    if not _INTEGER.match(value):
        return 0
    if value.startswith("-"):
        return 0
    # Bound the digit count before int(), which refuses very long strings
    digits = value.lstrip("+").lstrip("0") or "0"
    if len(digits) > len(str(MAX_QUANTITY)):
        return 0
    quantity = int(digits)
    return quantity if quantity <= MAX_QUANTITY else 0


def parse_row(line: str, min_columns: int = MIN_COLUMNS) -> ParseResult:
    """
    Turn one raw data line into a DefectRecord or a rejection.

    Args:
        line: Raw text line, header excluded, with or without line terminator
        min_columns: Minimum number of comma-separated fields

    Returns:
        ParseResult with ``record`` set on success, ``reason`` otherwise
    """
    if not line or not line.strip():
        return ParseResult(reason=RejectReason.BLANK)

    parts = [part.strip() for part in line.rstrip("\r\n").split(",")]
    if len(parts) < min_columns:
        return ParseResult(reason=RejectReason.TOO_FEW_COLUMNS)

    timestamp = parse_date(parts[0])
    if timestamp is None:
        return ParseResult(reason=RejectReason.INVALID_DATE)

    record = DefectRecord(
        timestamp=timestamp,
        line=parts[1],
        model=parts[2],
        defect=parts[3],
        reason=parts[4],
        station=parts[5],
        quantity=parse_quantity(parts[6]),
    )
    return ParseResult(record=record)
