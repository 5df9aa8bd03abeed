"""
Pytest configuration and fixtures for defect collector tests

Unit tests run against an in-memory destination store and temporary share
folders; integration tests run against PostgreSQL in a container.
"""
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

import psycopg
import pytest

from defect_collector.core.models import DefectRecord, LineConfig
from defect_collector.ingest import FileChangeCache, IdempotentIngestor, LineScanner

HEADER = "Date,Line,Model,Defect,Reason,Station,Quantity"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# IN-MEMORY DATABASE DOUBLES
# =======================

class FakeConnection:
    """Connection double counting transaction calls."""

    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FakePool:
    """Pool double handing out FakeConnections, optionally failing."""

    def __init__(self):
        self.connections: list[FakeConnection] = []
        self.fail_with: Exception | None = None

    @contextmanager
    def get_connection(self):
        if self.fail_with is not None:
            raise self.fail_with
        conn = FakeConnection()
        self.connections.append(conn)
        yield conn


class DefectStore:
    """
    In-memory destination tables.

    ``writer_factory`` builds table writers with the same interface as
    DefectTableWriter; ``fail_when`` makes matching records raise a
    psycopg error on insert.
    """

    def __init__(self):
        self.tables: dict[str, list[DefectRecord]] = {}
        self.exists_calls = 0
        self.insert_calls = 0
        self.fail_when: Callable[[DefectRecord], bool] | None = None

    def rows(self, table: str) -> list[DefectRecord]:
        return self.tables.get(table, [])

    def seed(self, table: str, *records: DefectRecord) -> None:
        self.tables.setdefault(table, []).extend(records)

    def writer_factory(self, table: str) -> "InMemoryTableWriter":
        return InMemoryTableWriter(self, table)


class InMemoryTableWriter:
    def __init__(self, store: DefectStore, table_name: str):
        self.store = store
        self.table_name = table_name

    def exists(self, conn, record: DefectRecord) -> bool:
        self.store.exists_calls += 1
        key = record.identity_key()
        return any(row.identity_key() == key for row in self.store.rows(self.table_name))

    def insert(self, conn, record: DefectRecord) -> int:
        self.store.insert_calls += 1
        if self.store.fail_when is not None and self.store.fail_when(record):
            raise psycopg.OperationalError("simulated insert failure")
        self.store.seed(self.table_name, record)
        return 1


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def defect_store() -> DefectStore:
    return DefectStore()


@pytest.fixture
def ingestor(fake_pool, defect_store) -> IdempotentIngestor:
    return IdempotentIngestor(fake_pool, writer_factory=defect_store.writer_factory)


# =======================
# SHARE FOLDER FIXTURES
# =======================

@pytest.fixture
def share_root(tmp_path) -> Path:
    """
    Directory standing in for the network; each line address is a sub-folder.

    Returns:
        Path under which ``<address>/<base_folder>`` folders are created
    """
    root = tmp_path / "shares"
    root.mkdir()
    return root


@pytest.fixture
def share_template(share_root) -> str:
    return os.path.join(str(share_root), "{address}", "{base_folder}")


@pytest.fixture
def make_line_folder(share_root) -> Callable[[str, str], Path]:
    """Create the share folder of a line address."""

    def _make(address: str, base_folder: str = "Data Server") -> Path:
        folder = share_root / address / base_folder
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    return _make


@pytest.fixture
def write_export() -> Callable[..., Path]:
    """Write an export file: header plus the given data rows."""

    def _write(folder: Path, name: str, rows: list[str], header: str = HEADER) -> Path:
        path = folder / name
        path.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def cache() -> FileChangeCache:
    return FileChangeCache()


@pytest.fixture
def scanner(ingestor, cache, share_template) -> LineScanner:
    return LineScanner(
        ingestor=ingestor,
        cache=cache,
        base_folder="Data Server",
        share_path_template=share_template,
    )


@pytest.fixture
def line_a() -> LineConfig:
    return LineConfig(name="Line A", ip="line-a", table_name="defect_line_a")


@pytest.fixture
def line_b() -> LineConfig:
    return LineConfig(name="Line B", ip="line-b", table_name="defect_line_b")


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator:
    """
    Start PostgreSQL container for integration tests

    Skips the dependent tests when Docker is not available.

    Yields:
        PostgresContainer instance with the destination tables created
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_collector",
        password="test_password",
        dbname="test_production",
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )
        with open(init_sql_path) as f:
            init_sql = f.read()

        with psycopg.connect(postgres_conninfo(container)) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


def postgres_conninfo(container) -> str:
    return (
        f"host={container.get_container_host_ip()} "
        f"port={container.get_exposed_port(5432)} "
        f"dbname=test_production user=test_collector password=test_password"
    )


@pytest.fixture
def pg_conninfo(postgres_container) -> str:
    return postgres_conninfo(postgres_container)


@pytest.fixture
def clean_db(pg_conninfo) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a connection to a database whose destination tables are empty

    Yields:
        psycopg Connection object
    """
    with psycopg.connect(pg_conninfo) as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE defect_line_a")
            cur.execute("TRUNCATE TABLE defect_line_b")
        conn.commit()
        yield conn
        conn.rollback()
