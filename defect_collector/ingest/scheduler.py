"""
Interval scheduler running every line scan concurrently.

Each cycle fans out one scan per configured line and waits for all of them
before sleeping until the next tick. The first cycle runs immediately.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from enum import Enum

from defect_collector.core.config import DEFAULT_CHECK_INTERVAL_MINUTES
from defect_collector.core.models import CycleSummary, LineConfig, LineScanResult, LineStatus
from defect_collector.ingest.scanner import LineScanner
from defect_collector.observability.logger import get_logger, log_operation
from defect_collector.observability.metrics import record_cycle, record_line_scan

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class ScanScheduler:
    """
    Runs scan cycles on a fixed interval until stopped.

    A failing line never cancels its siblings and never ends the loop; only
    stop() (or setting the shared stop event) does.
    """

    def __init__(
        self,
        lines: list[LineConfig],
        scanner: LineScanner,
        interval_seconds: float = DEFAULT_CHECK_INTERVAL_MINUTES * 60,
        max_workers: int = 16,
        stop_event: threading.Event | None = None,
    ):
        """
        Initialize scheduler.

        Args:
            lines: Lines to scan every cycle
            scanner: Scanner used for each line
            interval_seconds: Wait between the end of a cycle and the next one
            max_workers: Upper bound on concurrent line scans
            stop_event: Cancellation signal, shared with the scanner when given
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.lines = list(lines)
        self.scanner = scanner
        self.interval_seconds = interval_seconds
        self.max_workers = max_workers
        self._stop_event = stop_event or scanner.stop_event
        self._state = SchedulerState.IDLE
        self._cycles = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def cycles_completed(self) -> int:
        return self._cycles

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request cancellation; a pending wait returns at once."""
        self._stop_event.set()

    def run_cycle(self) -> CycleSummary:
        """
        Scan every line once, concurrently, and wait for all scans.

        Returns:
            CycleSummary with one LineScanResult per configured line, in
            configuration order
        """
        summary = CycleSummary(cycle=self._cycles, started_at=datetime.now(timezone.utc))
        self._state = SchedulerState.SCANNING

        try:
            with log_operation("Scan cycle", logger=logger, cycle=summary.cycle, lines=len(self.lines)):
                if self.lines:
                    summary.lines = self._scan_all()
        finally:
            self._state = SchedulerState.IDLE
            self._cycles += 1
            summary.finished_at = datetime.now(timezone.utc)

        for line_result in summary.lines:
            record_line_scan(line_result)
        record_cycle(summary)

        logger.info(
            f"Cycle {summary.cycle} done: {summary.files_processed} files processed, "
            f"{summary.inserted} records inserted, {summary.duplicates} duplicates skipped",
            extra={
                "cycle": summary.cycle,
                "files_failed": summary.files_failed,
                "lines_failed": summary.lines_failed,
                "files_tracked": len(self.scanner.cache),
                "duration_seconds": round(summary.duration_seconds, 3),
            }
        )
        return summary

    def _scan_all(self) -> list[LineScanResult]:
        workers = min(len(self.lines), self.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="line-scan") as executor:
            futures = [(line, executor.submit(self.scanner.scan, line)) for line in self.lines]
            wait([future for _, future in futures])

        results = []
        for line, future in futures:
            try:
                results.append(future.result())
            except Exception as e:
                logger.error(
                    f"Scan of line {line.name} raised: {e}",
                    extra={"line": line.name},
                    exc_info=e
                )
                results.append(LineScanResult(line=line.name, status=LineStatus.ERROR, error=str(e)))
        return results

    def run(self, max_cycles: int | None = None) -> int:
        """
        Run cycles until stopped.

        Args:
            max_cycles: Stop after this many cycles (None runs until stop())

        Returns:
            Number of cycles run
        """
        logger.info(
            f"Collector started: {len(self.lines)} line(s), checking every "
            f"{self.interval_seconds / 60:g} minute(s)",
            extra={"lines": [line.name for line in self.lines]}
        )
        if not self.lines:
            logger.warning("No lines configured; cycles will do nothing")

        cycles = 0
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Scan cycle failed: {e}", exc_info=True)
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            if self._stop_event.wait(self.interval_seconds):
                break

        logger.info("Collector stopped", extra={"cycles": cycles})
        return cycles
