"""
defect_collector: shop-floor defect CSV ingestion service.

- ingest: change detection, row parsing, idempotent ingestion, scheduling
- warehouse: PostgreSQL connection pool and destination table operations
- observability: structured logging and Prometheus metrics
- cli: service host entry point
"""

__version__ = "0.1.0"
