"""
Structured logging for the defect collector

Every module logs through a child of the ``defect_collector`` logger, which
owns the only handler. Records are rendered as JSON (python-json-logger) for
shipping, or as plain text when running the collector by hand.

Context is attached with ``extra=``; the keys used across the service are
``line``, ``table``, ``file`` and ``cycle``.
"""
import logging
import os
import sys
import time
from typing import TextIO

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "defect_collector"

JSON_FORMAT = "json"
TEXT_FORMAT = "text"

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(message)s"
TEXT_FIELDS = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding the fields an operator filters on

    Adds: timestamp, level, logger, function and the worker thread name,
    which tells concurrent line scans apart.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["function"] = record.funcName
        log_record["thread"] = record.threadName


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def build_formatter(format_type: str | None = None) -> logging.Formatter:
    """Formatter for ``format_type`` (``json`` or ``text``, default LOG_FORMAT or json)."""
    format_type = (format_type or os.getenv("LOG_FORMAT") or JSON_FORMAT).lower()
    if format_type == TEXT_FORMAT:
        return logging.Formatter(fmt=TEXT_FIELDS, datefmt="%Y-%m-%d %H:%M:%S")
    return CustomJsonFormatter(fmt=JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S")


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure a logger with a single stream handler

    Calling it again replaces the handler, so the service can reconfigure
    after parsing its command line.

    Args:
        name: Logger name
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default LOG_LEVEL or INFO)
        format_type: "json" or "text" (default LOG_FORMAT or "json")
        stream: Output stream (default stdout)

    Returns:
        Configured logger instance
    """
    log_level = _resolve_level(level)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(build_formatter(format_type))

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance

    Loggers inside the ``defect_collector`` tree inherit the service handler
    (set up on first use); any other name gets a handler of its own.

    Args:
        name: Logger name, usually ``__name__``

    Returns:
        Logger instance
    """
    in_tree = name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + ".")
    owner = logging.getLogger(ROOT_LOGGER_NAME if in_tree else name)

    if not owner.handlers:
        setup_logger(owner.name)

    return logging.getLogger(name)


class log_operation:
    """
    Log the start, end and wall time of a block

    Failures are logged with their traceback and re-raised.

    Usage:
        with log_operation("Scan cycle", logger=logger, cycle=3):
            scan_lines()
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.fields = fields
        self._started: float | None = None

    @property
    def elapsed(self) -> float:
        return 0.0 if self._started is None else time.monotonic() - self._started

    def _extra(self, **more) -> dict:
        return {"operation": self.operation_name, **self.fields, **more}

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._extra())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(self.elapsed, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name} in {duration}s",
                extra=self._extra(duration_seconds=duration, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name} after {duration}s: {exc_val}",
                extra=self._extra(
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                ),
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
