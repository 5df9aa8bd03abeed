"""
Service host for the defect collector.

Loads the configuration, opens the database pool and runs the scan loop
until SIGINT/SIGTERM.

Usage:
    python -m defect_collector.cli.service --config config/collector.yaml [--once]
"""

import argparse
import signal
import sys
import threading

from defect_collector.core.config import CollectorSettings, ConfigurationError, load_settings
from defect_collector.ingest import FileChangeCache, IdempotentIngestor, LineScanner, ScanScheduler
from defect_collector.observability.logger import get_logger, setup_logger
from defect_collector.observability.metrics import start_metrics_server
from defect_collector.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)


def build_scheduler(
    settings: CollectorSettings,
    pool: DatabaseConnectionPool,
    cache: FileChangeCache | None = None,
    stop_event: threading.Event | None = None,
) -> ScanScheduler:
    """
    Wire ingestor, scanner and scheduler from settings.

    Args:
        settings: Validated collector settings
        pool: Open database connection pool
        cache: Change cache (a fresh one by default)
        stop_event: Cancellation signal shared by scanner and scheduler

    Returns:
        Ready-to-run ScanScheduler
    """
    monitor = settings.monitor
    stop_event = stop_event or threading.Event()

    ingestor = IdempotentIngestor(pool, encoding=monitor.file_encoding)
    scanner = LineScanner(
        ingestor=ingestor,
        cache=cache or FileChangeCache(),
        base_folder=monitor.base_folder,
        share_path_template=monitor.share_path_template,
        stop_event=stop_event,
    )
    return ScanScheduler(
        lines=monitor.lines,
        scanner=scanner,
        interval_seconds=monitor.check_interval_seconds,
        max_workers=monitor.max_workers,
        stop_event=stop_event,
    )


def install_signal_handlers(scheduler: ScanScheduler) -> None:
    """Stop the scheduler on SIGINT/SIGTERM."""

    def _handle_signal(signum, frame):  # type: ignore[no-untyped-def]
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name} signal, initiating graceful shutdown...")
        scheduler.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)


def run_service(args: argparse.Namespace) -> int:
    """
    Run the collector.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for clean shutdown, 1 for startup failure)
    """
    try:
        settings = load_settings(args.config, env_file=args.env_file)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    if not settings.connection_string:
        logger.error(
            "No database connection string configured "
            "(connection_strings.production_db or PRODUCTION_DB)"
        )
        return 1

    pool = DatabaseConnectionPool(
        conninfo=settings.connection_string,
        max_size=max(2, min(len(settings.monitor.lines), settings.monitor.max_workers)),
    )
    try:
        pool.open()
    except Exception as e:
        logger.error(f"Could not connect to the production database: {e}")
        return 1

    try:
        if settings.monitor.metrics_port:
            start_metrics_server(settings.monitor.metrics_port)
            logger.info(f"Metrics available on port {settings.monitor.metrics_port}")

        scheduler = build_scheduler(settings, pool)
        install_signal_handlers(scheduler)
        scheduler.run(max_cycles=1 if args.once else None)
        return 0
    finally:
        pool.close()


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Collect line defect CSV exports into the production database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run as a service
  %(prog)s --config config/collector.yaml

  # Single scan of every line, then exit
  %(prog)s --config config/collector.yaml --once --log-format text
        """
    )
    parser.add_argument(
        "--config",
        default="config/collector.yaml",
        help="Path to configuration file (default: config/collector.yaml)"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Optional .env file with environment overrides"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan cycle and exit"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=None,
        help="Log format (default: LOG_FORMAT or json)"
    )

    args = parser.parse_args(argv)
    setup_logger(level=args.log_level, format_type=args.log_format)

    return run_service(args)


if __name__ == "__main__":
    sys.exit(main())
