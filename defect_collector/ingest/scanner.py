"""
Per-line scan of a machine's shared export folder.

A scan lists the CSV files directly in the line's share, keeps only the
monthly exports (``December-2025_anything.csv``), and hands every export
whose modification time advanced to the ingestor.
"""

import os
import re
import threading

from defect_collector.core.config import DEFAULT_BASE_FOLDER, DEFAULT_SHARE_PATH_TEMPLATE
from defect_collector.core.models import FileOutcome, LineConfig, LineScanResult, LineStatus
from defect_collector.ingest.file_cache import FileChangeCache
from defect_collector.ingest.ingestor import IdempotentIngestor
from defect_collector.observability.logger import get_logger

logger = get_logger(__name__)

# Month name, hyphen, four-digit year, underscore, anything
EXPORT_FILE_PATTERN = re.compile(r"^[A-Za-z]+-\d{4}_.*", re.IGNORECASE | re.ASCII)


def is_csv(file_name: str) -> bool:
    return file_name.lower().endswith(".csv")


def is_export_file(file_name: str) -> bool:
    """Return True for CSV names following the ``<Month>-<Year>_*.csv`` convention."""
    return is_csv(file_name) and EXPORT_FILE_PATTERN.match(file_name) is not None


def resolve_line_root(
    address: str,
    base_folder: str = DEFAULT_BASE_FOLDER,
    template: str = DEFAULT_SHARE_PATH_TEMPLATE,
) -> str:
    """
    Build the folder a line exports to.

    The default template gives the UNC path ``\\\\<address>\\<base_folder>``.

    Examples:
        >>> resolve_line_root("line-a", "exports", "/mnt/{address}/{base_folder}")
        '/mnt/line-a/exports'
    """
    return template.format(address=address, base_folder=base_folder)


class LineScanner:
    """
    Scans one line's share and ingests the exports that changed.

    One instance serves every line; scans of different lines may run
    concurrently because they only share the (thread-safe) change cache.
    """

    def __init__(
        self,
        ingestor: IdempotentIngestor,
        cache: FileChangeCache,
        base_folder: str = DEFAULT_BASE_FOLDER,
        share_path_template: str = DEFAULT_SHARE_PATH_TEMPLATE,
        stop_event: threading.Event | None = None,
    ):
        """
        Initialize line scanner.

        Args:
            ingestor: Ingestor that stores the records of a changed file
            cache: Change cache shared across cycles
            base_folder: Shared folder name on every line machine
            share_path_template: Template used by resolve_line_root
            stop_event: Set to abandon a listing between two files
        """
        self.ingestor = ingestor
        self.cache = cache
        self.base_folder = base_folder
        self.share_path_template = share_path_template
        self.stop_event = stop_event or threading.Event()

    def list_export_files(self, root: str, result: LineScanResult) -> list[str]:
        """
        List matching export files directly under ``root``, sorted by name.

        Non-matching CSV files are only counted; they are never opened.

        Raises:
            OSError: If the folder cannot be listed
        """
        exports = []
        with os.scandir(root) as entries:
            for entry in entries:
                if not is_csv(entry.name) or not entry.is_file():
                    continue
                if is_export_file(entry.name):
                    exports.append(os.path.abspath(entry.path))
                else:
                    result.files_ignored += 1
        return sorted(exports)

    def scan(self, line: LineConfig) -> LineScanResult:
        """
        Scan one line.

        Never raises: an unreachable share or any other failure is logged and
        reported in the result so sibling lines are unaffected.

        Args:
            line: Line to scan

        Returns:
            LineScanResult describing what happened
        """
        result = LineScanResult(line=line.name)

        if not line.ip:
            result.status = LineStatus.SKIPPED
            logger.debug(f"Line {line.name} has no address, skipping", extra={"line": line.name})
            return result

        try:
            root = resolve_line_root(line.ip, self.base_folder, self.share_path_template)
            result.root = root

            try:
                reachable = os.path.isdir(root)
                files = self.list_export_files(root, result) if reachable else []
            except OSError as e:
                reachable = False
                result.error = str(e)

            if not reachable:
                result.status = LineStatus.UNREACHABLE
                result.error = result.error or "folder does not exist or is not reachable"
                logger.warning(
                    f"Line {line.name}: share {root} unreachable: {result.error}",
                    extra={"line": line.name, "root": root}
                )
                return result

            for path in files:
                if self.stop_event.is_set():
                    result.status = LineStatus.CANCELLED
                    logger.info(f"Line {line.name}: scan cancelled", extra={"line": line.name})
                    break
                self._process_file(line, path, result)

        except Exception as e:
            result.status = LineStatus.ERROR
            result.error = str(e)
            logger.error(
                f"Error Line {line.name}: {e}",
                extra={"line": line.name},
                exc_info=True
            )

        return result

    def _process_file(self, line: LineConfig, path: str, result: LineScanResult) -> None:
        try:
            current_mtime = os.stat(path).st_mtime
        except OSError as e:
            # Renamed or removed since the listing
            logger.warning(
                f"Line {line.name}: cannot stat {path}: {e}",
                extra={"line": line.name, "file": path}
            )
            return

        if not self.cache.should_process(path, current_mtime):
            result.files_unchanged += 1
            return

        file_result = self.ingestor.ingest_file(path, line.table_name)
        result.files.append(file_result)

        if file_result.outcome == FileOutcome.PROCESSED:
            self.cache.mark_processed(path, current_mtime)
