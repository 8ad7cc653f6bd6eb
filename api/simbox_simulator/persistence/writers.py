"""
DuckDB Write Functions

Batch upserts for the persistence layer.

Rows are collected into Polars DataFrames and written with one
``INSERT OR REPLACE ... SELECT * FROM df`` per table (zero-copy via Arrow).
BufferedWriter provides the write-behind behaviour the generator relies on:
callers submit rows and move on; rows are flushed in batches.
"""

import logging
from typing import Any, Type

import duckdb
import polars as pl
from pydantic import BaseModel

from simbox_simulator.errors import TransientWriteFailure

from .models import TABLE_MODELS
from .schema_generator import polars_schema, primary_key_of, table_name_of

logger = logging.getLogger(__name__)


def write_rows(
    conn: duckdb.DuckDBPyConnection,
    model: Type[BaseModel],
    rows: list[dict[str, Any]],
) -> int:
    """Upsert rows into the model's table.

    Rows must have unique primary keys within one call.

    Args:
        conn: DuckDB connection
        model: Persistence model describing the table
        rows: Row dicts keyed by column name

    Returns:
        Number of rows written

    Raises:
        TransientWriteFailure: If the batch could not be written

    Examples:
        >>> rows = [{"cell_id": 0}, {"cell_id": 1}]
        >>> write_rows(conn, CellRecord, rows)
        2
    """
    if not rows:
        return 0

    table_name = table_name_of(model)
    schema = polars_schema(model)

    # Tables made only of key columns have nothing to replace
    verb = "INSERT OR IGNORE" if set(primary_key_of(model)) == set(schema) else "INSERT OR REPLACE"

    try:
        df = pl.DataFrame(rows, schema=schema)
        conn.execute(f"{verb} INTO {table_name} SELECT * FROM df")
    except (duckdb.Error, pl.exceptions.PolarsError, TypeError, ValueError) as e:
        raise TransientWriteFailure(table_name, len(rows), e) from e

    return len(rows)


class BufferedWriter:
    """Write-behind buffer with per-table coalescing.

    Rows are keyed by primary key, so repeated upserts of the same row
    (a device moving twice before a flush) collapse into the latest one.
    A table is flushed once its buffer reaches ``batch_size`` rows; ``flush()``
    writes everything outstanding.

    A failed batch is logged, counted and dropped. It is never retried.

    Usage:
        writer = BufferedWriter(conn, batch_size=5000)
        writer.submit("devices", device.to_record())
        ...
        writer.flush()
        dropped = writer.pop_failed_rows()
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection, batch_size: int = 5000):
        self.conn = conn
        self.batch_size = batch_size
        self._failed_rows = 0
        self._buffers: dict[str, dict[tuple, dict[str, Any]]] = {}

    @property
    def pending_count(self) -> int:
        return sum(len(buffer) for buffer in self._buffers.values())

    def submit(self, table: str, row: dict[str, Any]) -> None:
        """Queue an upsert of ``row`` into ``table``.

        Raises:
            KeyError: If the table is unknown or the row lacks a key column
        """
        model = TABLE_MODELS[table]
        key = tuple(row[column] for column in primary_key_of(model))

        buffer = self._buffers.setdefault(table, {})
        buffer[key] = row

        if len(buffer) >= self.batch_size:
            self._flush_table(table)

    def flush(self) -> int:
        """Write every buffered row. Returns the number of rows written."""
        written = 0
        for table in list(self._buffers):
            written += self._flush_table(table)
        return written

    def pop_failed_rows(self) -> int:
        """Rows dropped since the previous call."""
        failed, self._failed_rows = self._failed_rows, 0
        return failed

    def _flush_table(self, table: str) -> int:
        buffer = self._buffers.get(table)
        if not buffer:
            return 0

        rows = list(buffer.values())
        buffer.clear()

        try:
            return write_rows(self.conn, TABLE_MODELS[table], rows)
        except TransientWriteFailure as failure:
            self._failed_rows += failure.row_count
            logger.warning("%s", failure)
            return 0
