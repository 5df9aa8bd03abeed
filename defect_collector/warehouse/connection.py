"""
Connection pool for the production database (psycopg3 / psycopg_pool)

Line scans run concurrently; each file being ingested borrows one connection
for all of its existence-check/insert pairs and hands it back afterwards.
"""
import os
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from defect_collector.observability.logger import get_logger

logger = get_logger(__name__)


def build_conninfo(
    host: str | None = None,
    port: int | None = None,
    database: str | None = None,
    user: str | None = None,
    password: str | None = None,
    connect_timeout: int = 30,
) -> str:
    """
    Build a libpq connection string from discrete settings

    Missing values come from DB_HOST, DB_PORT, DB_NAME, DB_USER and
    DB_PASSWORD. A password is mandatory.

    Raises:
        ValueError: If no password is given or set in the environment
    """
    password = password or os.getenv("DB_PASSWORD")
    if not password:
        raise ValueError(
            "Database password must be provided. "
            "Set a connection string, the DB_PASSWORD environment variable "
            "or pass it to the constructor."
        )

    return make_conninfo(
        host=host or os.getenv("DB_HOST", "localhost"),
        port=port or int(os.getenv("DB_PORT", "5432")),
        dbname=database or os.getenv("DB_NAME", "production"),
        user=user or os.getenv("DB_USER", "collector"),
        password=password,
        connect_timeout=connect_timeout,
    )


class DatabaseConnectionPool:
    """
    Pool of connections to the production database

    Pooled connections return rows as dictionaries. Built from a libpq
    connection string (the ``production_db`` setting) or from discrete
    host/port/database/user/password settings.
    """

    def __init__(
        self,
        conninfo: str | None = None,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            conninfo: libpq connection string or URL; when given, the discrete
                settings are ignored
            host, port, database, user, password: Discrete settings, see
                build_conninfo
            min_size: Connections kept open
            max_size: Upper bound on connections, one per concurrent file
            timeout: Seconds to wait when opening or borrowing a connection
        """
        self.conninfo = conninfo or build_conninfo(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            connect_timeout=int(timeout),
        )
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _new_pool(self) -> ConnectionPool:
        return ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, waiting until its first connections are established

        Each attempt uses a fresh pool; a failed one is closed before the
        next attempt.

        Args:
            max_retries: Number of attempts
            retry_delay: Seconds between attempts

        Raises:
            OperationalError: If every attempt failed
        """
        if self._pool is not None:
            return

        last_error: Exception | None = None
        for attempt in range(1, max_retries + 1):
            pool = self._new_pool()
            try:
                pool.open(wait=True, timeout=self.timeout)
            except Exception as e:
                pool.close()
                last_error = e
                logger.warning(f"Database connection attempt {attempt}/{max_retries} failed: {e}")
                if attempt < max_retries:
                    time.sleep(retry_delay)
                continue

            self._pool = pool
            return

        raise OperationalError(
            f"Failed to connect to database after {max_retries} attempts: {last_error}"
        ) from last_error

    def close(self) -> None:
        """Close every pooled connection"""
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()

    @contextmanager
    def get_connection(self):
        """
        Borrow a connection; it goes back to the pool when the block exits

        Yields:
            psycopg.Connection: Database connection

        Raises:
            RuntimeError: If the pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        """Borrow a connection and yield a cursor on it"""
        with self.get_connection() as conn, conn.cursor() as cur:
            yield cur

    def execute_query(self, query, params: tuple | dict | None = None) -> list[dict]:
        """
        Run a SELECT and fetch every row

        Args:
            query: SQL string or ``psycopg.sql.Composed``
            params: Query parameters

        Returns:
            One dictionary per row
        """
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
