"""
Idempotent ingestion of one CSV export into its line's destination table.

Flow: read whole file → parse rows → for each record, existence check → insert new.

Re-ingesting a file (partial writes, restarts, re-scans) never stores a
record twice, because every record is checked against the table before it is
inserted.
"""

from pathlib import Path
from typing import Callable

import psycopg

from defect_collector.core.config import DEFAULT_FILE_ENCODING
from defect_collector.core.models import DefectRecord, FileIngestResult, FileOutcome, RejectReason
from defect_collector.core.parser import MIN_COLUMNS, parse_row
from defect_collector.observability.logger import get_logger
from defect_collector.observability.metrics import record_file_ingest
from defect_collector.warehouse.connection import DatabaseConnectionPool
from defect_collector.warehouse.defect_table import DefectTableWriter

logger = get_logger(__name__)


class IdempotentIngestor:
    """
    Reads a changed export file and stores each of its records exactly once.

    Never raises for file or database problems: the outcome is reported in the
    returned FileIngestResult, and only FileOutcome.PROCESSED means the file
    may be marked as seen.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        encoding: str = DEFAULT_FILE_ENCODING,
        min_columns: int = MIN_COLUMNS,
        writer_factory: Callable[[str], DefectTableWriter] = DefectTableWriter,
    ):
        """
        Initialize ingestor.

        Args:
            pool: Database connection pool; one connection is borrowed per file
            encoding: Text encoding of the exports
            min_columns: Minimum number of fields in a data row
            writer_factory: Builds the table writer for a destination table
        """
        self.pool = pool
        self.encoding = encoding
        self.min_columns = min_columns
        self.writer_factory = writer_factory

    def read_records(self, path: str | Path, result: FileIngestResult) -> list[DefectRecord]:
        """
        Read and parse every data row of a file, in file order.

        The first line is the header and is always skipped. The file is opened
        for reading only, without any lock, so a machine still appending to it
        does not make the read fail.

        Args:
            path: File to read
            result: Result whose row counters are updated

        Returns:
            Parsed records; rejected rows are counted in ``result``

        Raises:
            OSError: If the file cannot be opened or read
        """
        records = []
        with open(path, "r", encoding=self.encoding, errors="replace") as f:
            f.readline()
            for raw in f:
                parsed = parse_row(raw, self.min_columns)
                if parsed.reason == RejectReason.BLANK:
                    continue
                result.rows_read += 1
                if parsed.ok:
                    records.append(parsed.record)
                else:
                    result.reject(parsed.reason)
        return records

    def store_records(self, records: list[DefectRecord], table: str, result: FileIngestResult) -> None:
        """
        Insert records whose identity is not yet in the table.

        Every record is committed (or rolled back) on its own, so a failed
        statement only loses that record for this pass.

        Raises:
            psycopg.Error, RuntimeError: If no connection can be obtained
        """
        writer = self.writer_factory(table)

        with self.pool.get_connection() as conn:
            for record in records:
                try:
                    if writer.exists(conn, record):
                        result.duplicates += 1
                        conn.commit()
                        continue

                    writer.insert(conn, record)
                    conn.commit()
                    result.inserted += 1
                    logger.info(
                        f"New data inserted: {record.model} - {record.defect}",
                        extra={"table": table, "file": result.path}
                    )
                except psycopg.Error as e:
                    result.insert_failures += 1
                    logger.warning(
                        f"Failed to store record {record.identity_key()} in {table}: {e}",
                        extra={"table": table, "file": result.path}
                    )
                    _rollback(conn)

    def ingest_file(self, path: str | Path, table: str) -> FileIngestResult:
        """
        Ingest one file into a destination table.

        Args:
            path: Export file to ingest
            table: Destination table name

        Returns:
            FileIngestResult with counts and the overall outcome
        """
        file_name = Path(path).name
        result = FileIngestResult(path=str(path), table=table)

        try:
            records = self.read_records(path, result)
        except OSError as e:
            # Locked, vanished or share dropped: try again next cycle
            result.outcome = FileOutcome.OPEN_FAILED
            result.error = str(e)
            logger.warning(
                f"File {file_name} could not be read, will retry next cycle: {e}",
                extra={"table": table, "file": str(path)}
            )
            record_file_ingest(result)
            return result
        except Exception as e:
            result.outcome = FileOutcome.FAILED
            result.error = str(e)
            logger.exception(
                f"Failed to read {file_name}: {e}",
                extra={"table": table, "file": str(path)}
            )
            record_file_ingest(result)
            return result

        if records:
            try:
                self.store_records(records, table, result)
            except Exception as e:
                result.outcome = FileOutcome.FAILED
                result.error = str(e)
                logger.exception(
                    f"Failed to process {file_name}: {e}",
                    extra={"table": table, "file": str(path)}
                )
                record_file_ingest(result)
                return result

        if result.insert_failures:
            result.outcome = FileOutcome.PARTIAL
            result.error = f"{result.insert_failures} record(s) could not be stored"

        logger.info(
            f"Ingested {file_name}: {result.inserted} inserted, "
            f"{result.duplicates} duplicates, {result.rejected_total} rejected",
            extra={
                "table": table,
                "file": str(path),
                "outcome": result.outcome.value,
                "rows_read": result.rows_read,
                "insert_failures": result.insert_failures,
            }
        )
        record_file_ingest(result)
        return result


def _rollback(conn) -> None:
    try:
        conn.rollback()
    except psycopg.Error as e:
        logger.warning(f"Rollback failed, connection is likely broken: {e}")
