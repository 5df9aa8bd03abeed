"""
Prometheus metrics collection for the defect collector

This module provides metrics instrumentation for monitoring scan cycles,
file ingestion outcomes and data quality per production line.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from defect_collector.core.models import CycleSummary, FileIngestResult, LineScanResult

# Private registry: only collector metrics are exposed
REGISTRY = CollectorRegistry()


# =======================
# INGESTION METRICS
# =======================

files_ingested_total = Counter(
    name="collector_files_ingested_total",
    documentation="Files handed to the ingestor, by outcome",
    labelnames=["table", "outcome"],  # outcome: processed, open_failed, partial, failed
    registry=REGISTRY,
)

rows_rejected_total = Counter(
    name="collector_rows_rejected_total",
    documentation="CSV rows dropped by the parser",
    labelnames=["table", "reason"],  # reason: too_few_columns, invalid_date
    registry=REGISTRY,
)

records_inserted_total = Counter(
    name="collector_records_inserted_total",
    documentation="Records inserted into destination tables",
    labelnames=["table"],
    registry=REGISTRY,
)

duplicates_skipped_total = Counter(
    name="collector_duplicates_skipped_total",
    documentation="Records skipped because their identity already exists",
    labelnames=["table"],
    registry=REGISTRY,
)

insert_failures_total = Counter(
    name="collector_insert_failures_total",
    documentation="Existence checks or inserts that failed",
    labelnames=["table"],
    registry=REGISTRY,
)

# =======================
# SCAN METRICS
# =======================

line_scans_total = Counter(
    name="collector_line_scans_total",
    documentation="Line scans, by status",
    labelnames=["line", "status"],  # status: ok, skipped, unreachable, cancelled, error
    registry=REGISTRY,
)

files_unchanged_total = Counter(
    name="collector_files_unchanged_total",
    documentation="Matching files skipped because their modification time did not advance",
    labelnames=["line"],
    registry=REGISTRY,
)

cycle_duration_seconds = Histogram(
    name="collector_cycle_duration_seconds",
    documentation="Wall time of one scan cycle across all lines",
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0],
    registry=REGISTRY,
)

last_cycle_timestamp = Gauge(
    name="collector_last_cycle_timestamp_seconds",
    documentation="Unix time at which the last scan cycle finished",
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Generate Prometheus metrics in text format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Serve REGISTRY over HTTP on a daemon thread

    Args:
        port: Listening port (METRICS_PORT or 8000 when omitted)
    """
    # Lazy import: avoids binding a port just by importing the metrics
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """Add ``value`` to the labelled child of ``counter``; zero leaves the series absent."""
    if value:
        counter.labels(**labels).inc(value)


def record_file_ingest(result: FileIngestResult) -> None:
    """Record the counters for one ingested file."""
    increment_counter(files_ingested_total, 1, table=result.table, outcome=result.outcome.value)
    for reason, count in result.rows_rejected.items():
        increment_counter(rows_rejected_total, count, table=result.table, reason=reason)
    increment_counter(records_inserted_total, result.inserted, table=result.table)
    increment_counter(duplicates_skipped_total, result.duplicates, table=result.table)
    increment_counter(insert_failures_total, result.insert_failures, table=result.table)


def record_line_scan(result: LineScanResult) -> None:
    """Record the status of one line scan."""
    increment_counter(line_scans_total, 1, line=result.line, status=result.status.value)
    increment_counter(files_unchanged_total, result.files_unchanged, line=result.line)


def record_cycle(summary: CycleSummary) -> None:
    """Record cycle duration and completion time."""
    cycle_duration_seconds.observe(summary.duration_seconds)
    if summary.finished_at is not None:
        last_cycle_timestamp.set(summary.finished_at.timestamp())
