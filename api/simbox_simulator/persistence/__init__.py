"""Persistence layer: DuckDB schema, batch writes and analytical queries."""

from .connection import DatabaseManager
from .store import (
    DETECTION_TOGGLE,
    SELF_CALLS_TOGGLE,
    DuckDBStore,
    SimboxStore,
    StoreTransaction,
    connect_store,
)

__all__ = [
    "DETECTION_TOGGLE",
    "SELF_CALLS_TOGGLE",
    "DatabaseManager",
    "DuckDBStore",
    "SimboxStore",
    "StoreTransaction",
    "connect_store",
]
