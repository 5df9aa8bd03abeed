"""
Duplicate-safe writes of defect records into per-line destination tables.

Each record is written with a check-then-insert pair: an existence check on
the record identity, then an INSERT only when nothing matched. This is not
atomic against concurrent writers; the collector is the only writer of these
tables and every line writes to its own table.
"""

from psycopg import sql

from defect_collector.core.models import DefectRecord
from defect_collector.utils.validation import split_table_name

EXISTS_QUERY = """
    SELECT COUNT(1) AS matches FROM {table}
    WHERE DateTime = %(DateTime)s
      AND Line = %(Line)s
      AND Model = %(Model)s
      AND Defect = %(Defect)s
      AND Station = %(Station)s
      AND Reason_Defect = %(Reason_Defect)s
"""

INSERT_COMMAND = """
    INSERT INTO {table}
        (DateTime, Line, Model, Defect, Reason_Defect, Station, Quantity)
    VALUES
        (%(DateTime)s, %(Line)s, %(Model)s, %(Defect)s, %(Reason_Defect)s, %(Station)s, %(Quantity)s)
"""


def table_identifier(table_name: str) -> sql.Identifier:
    """Quote a validated ``table`` or ``schema.table`` name."""
    return sql.Identifier(*split_table_name(table_name))


class DefectTableWriter:
    """
    Issues the existence check and insert statements for one destination table.

    Statements run on a connection owned by the caller, so the caller decides
    transaction boundaries (the ingestor commits or rolls back per record).
    """

    def __init__(self, table_name: str):
        """
        Initialize table writer.

        Args:
            table_name: Destination table, optionally schema-qualified

        Raises:
            ValidationError: If the table name is not a safe identifier
        """
        self.table_name = table_name
        identifier = table_identifier(table_name)
        self._exists_query = sql.SQL(EXISTS_QUERY).format(table=identifier)
        self._insert_command = sql.SQL(INSERT_COMMAND).format(table=identifier)

    def exists(self, conn, record: DefectRecord) -> bool:
        """
        Check whether a row with the same identity is already stored.

        Quantity is not part of the comparison.
        """
        with conn.cursor() as cur:
            cur.execute(self._exists_query, record.as_params())
            row = cur.fetchone()
        return _first_value(row) > 0

    def insert(self, conn, record: DefectRecord) -> int:
        """
        Insert a record.

        Returns:
            Number of rows inserted
        """
        with conn.cursor() as cur:
            cur.execute(self._insert_command, record.as_params())
            return cur.rowcount


def _first_value(row) -> int:
    # Pooled connections use dict_row; plain connections return tuples
    if row is None:
        return 0
    if isinstance(row, dict):
        return int(next(iter(row.values())))
    return int(row[0])
