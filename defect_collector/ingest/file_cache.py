"""
In-memory high-water marks of file modification times.

The cache lets a scan skip files whose modification time has not advanced
since they were last ingested successfully. It is never persisted: after a
restart every export is ingested once more, which the duplicate checks make
harmless.
"""

import threading


class FileChangeCache:
    """
    Thread-safe mapping of absolute file path to last processed modification time.

    Scanners of different lines work on disjoint paths, so a single
    instance-wide lock is never contended for long.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, float] = {}

    def should_process(self, path: str, current_mtime: float) -> bool:
        """
        Return True if the file is new or was modified after its last processing.

        Args:
            path: Absolute file path
            current_mtime: Modification time observed now

        Returns:
            True when the path is unknown or ``current_mtime`` is strictly greater
            than the cached value
        """
        with self._lock:
            cached = self._entries.get(path)
        return cached is None or current_mtime > cached

    def mark_processed(self, path: str, mtime: float) -> None:
        """
        Record the modification time a file had when it was processed.

        Must only be called once the file has been fully read and every one of
        its records handled; a file marked too early would never be retried.
        """
        with self._lock:
            self._entries[path] = mtime

    def get(self, path: str) -> float | None:
        with self._lock:
            return self._entries.get(path)

    def clear(self) -> None:
        """Forget every entry, forcing a full re-scan on the next cycle."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
