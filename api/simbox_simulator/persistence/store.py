"""
Store contract and its DuckDB implementation.

The engine, detector and stats reporter only talk to a ``SimboxStore``.
DuckDBStore buffers generator writes (write-behind) and runs the detector's
read-then-write as one DuckDB transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

import duckdb

from simbox_simulator.errors import ConnectionFailure

from . import queries
from .connection import DatabaseManager
from .models import SimboxParameterRecord, TABLE_MODELS
from .writers import BufferedWriter, write_rows

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Externally controlled toggles (simbox_parameters rows)
DETECTION_TOGGLE = "ENABLE_SUSPICIOUS_COHORT_DETECTION"
SELF_CALLS_TOGGLE = "SIMBOX_CALLS_ITSELF"


class StoreTransaction(Protocol):
    """Operations available inside ``SimboxStore.execute_atomic``.

    Writes made here are immediate and part of the enclosing transaction.
    """

    def query_top_signatures(self, limit: int) -> list[tuple[str, int]]:
        ...

    def query_members_of(self, signature: str) -> list[tuple[int, int]]:
        ...

    def upsert_many(self, table: str, rows: list[dict[str, Any]]) -> int:
        ...


@runtime_checkable
class SimboxStore(Protocol):
    """Persistence operations the simulator depends on."""

    def upsert(self, table: str, fields: dict[str, Any]) -> None:
        ...

    def drain(self) -> int:
        ...

    def query_top_signatures(self, limit: int) -> list[tuple[str, int]]:
        ...

    def query_members_of(self, signature: str) -> list[tuple[int, int]]:
        ...

    def execute_atomic(self, unit_of_work: Callable[[StoreTransaction], T]) -> T:
        ...

    def read_toggle(self, name: str, default: int) -> int:
        ...

    def query_suspect_status(self, device_ids: list[int]) -> list[tuple[str | None, int]]:
        ...

    def reset_cohorts(self) -> None:
        ...

    def pop_failed_writes(self) -> int:
        ...


class _TransactionScope:
    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    def query_top_signatures(self, limit: int) -> list[tuple[str, int]]:
        return queries.get_top_signatures(self.conn, limit).rows()

    def query_members_of(self, signature: str) -> list[tuple[int, int]]:
        return queries.get_devices_with_signature(self.conn, signature).rows()

    def upsert_many(self, table: str, rows: list[dict[str, Any]]) -> int:
        return write_rows(self.conn, TABLE_MODELS[table], rows)


class DuckDBStore:
    """SimboxStore backed by one DuckDB database.

    Usage:
        store = DuckDBStore(DatabaseManager(":memory:"))
        store.upsert("devices", device.to_record())
        store.drain()
        top = store.query_top_signatures(20)
    """

    def __init__(self, manager: DatabaseManager, batch_size: int = 5000):
        self.manager = manager
        self.conn = manager.get_connection()
        self.writer = BufferedWriter(self.conn, batch_size=batch_size)

    @property
    def endpoint(self) -> str:
        return str(self.manager.db_path)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, table: str, fields: dict[str, Any]) -> None:
        """Queue an insert-or-replace keyed by the table's primary key."""
        self.writer.submit(table, fields)

    def drain(self) -> int:
        """Write everything buffered. Returns the number of rows written."""
        return self.writer.flush()

    def pop_failed_writes(self) -> int:
        return self.writer.pop_failed_rows()

    def reset_cohorts(self) -> None:
        """Forget every previously detected cohort."""
        self.conn.execute("DELETE FROM suspicious_cohort_members")
        self.conn.execute("DELETE FROM suspicious_cohorts")

    def set_toggle(self, name: str, value: int) -> None:
        write_rows(
            self.conn,
            SimboxParameterRecord,
            [{"parameter_name": name, "parameter_value": value}],
        )

    def execute_atomic(self, unit_of_work: Callable[[StoreTransaction], T]) -> T:
        """Run ``unit_of_work`` inside one transaction.

        Any exception rolls the transaction back and is re-raised.
        """
        self.conn.begin()
        try:
            result = unit_of_work(_TransactionScope(self.conn))
        except BaseException:
            self.conn.rollback()
            raise
        self.conn.commit()
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_top_signatures(self, limit: int) -> list[tuple[str, int]]:
        return queries.get_top_signatures(self.conn, limit).rows()

    def query_members_of(self, signature: str) -> list[tuple[int, int]]:
        return queries.get_devices_with_signature(self.conn, signature).rows()

    def read_toggle(self, name: str, default: int = 0) -> int:
        row = self.conn.execute(
            "SELECT parameter_value FROM simbox_parameters WHERE parameter_name = ?",
            [name],
        ).fetchone()
        return default if row is None else int(row[0])

    def query_suspect_status(self, device_ids: list[int]) -> list[tuple[str | None, int]]:
        return queries.get_suspect_status(self.conn, device_ids).rows()

    def close(self) -> None:
        self.drain()
        self.manager.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def connect_store(endpoints: list[str], batch_size: int = 5000) -> DuckDBStore:
    """Open the first endpoint that works and prepare its schema.

    Args:
        endpoints: DuckDB database paths, tried in order (":memory:" allowed)
        batch_size: Rows buffered per table before a write

    Raises:
        ConnectionFailure: If no endpoint could be opened
    """
    reasons: dict[str, str] = {}

    for endpoint in endpoints:
        try:
            manager = DatabaseManager(endpoint)
        except duckdb.Error as e:
            reasons[endpoint] = str(e)
            logger.warning("Could not open %s: %s", endpoint, e)
            continue

        try:
            manager.setup()
        except (duckdb.Error, RuntimeError) as e:
            manager.close()
            reasons[endpoint] = str(e)
            logger.warning("Could not prepare %s: %s", endpoint, e)
            continue

        logger.info("Connected to %s", endpoint)
        return DuckDBStore(manager, batch_size=batch_size)

    raise ConnectionFailure(endpoints, reasons)
