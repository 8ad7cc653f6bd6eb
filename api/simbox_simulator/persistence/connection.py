"""
DuckDB Connection Manager

Manages database connections, schema initialization and validation.
Provides a high-level interface for database setup and lifecycle management.
"""

import sys
from pathlib import Path

import duckdb

from .models import ALL_MODELS
from .schema_generator import generate_full_schema_ddl, table_name_of, validate_table_schema

IN_MEMORY = ":memory:"


class DatabaseManager:
    """Manages DuckDB connection and schema.

    Responsibilities:
    - Create and manage DuckDB connection
    - Initialize database schema from Pydantic models
    - Validate schema matches models
    - Provide context manager for clean resource management

    Usage:
        # Simple usage
        manager = DatabaseManager("simbox_data.db")
        manager.setup()  # Initialize + validate

        # Context manager usage
        with DatabaseManager(":memory:") as manager:
            manager.setup()
            # Use manager.conn for queries
    """

    def __init__(self, db_path: str | Path = "simbox_data.db"):
        """Initialize database manager.

        Args:
            db_path: Path to DuckDB database file, or ":memory:"

        Raises:
            duckdb.Error: If the database cannot be opened
        """
        self.db_path = db_path if str(db_path) == IN_MEMORY else Path(db_path)
        self.conn = duckdb.connect(str(self.db_path))

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.conn

    def initialize_schema(self, quiet: bool = True) -> None:
        """Initialize database schema from Pydantic models.

        Uses CREATE TABLE IF NOT EXISTS, so safe to run multiple times.
        """
        if not quiet:
            print("Initializing database schema...", file=sys.stderr)

        ddl = generate_full_schema_ddl()

        # DuckDB doesn't have executescript, so split and execute individually
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for statement in statements:
            self.conn.execute(statement)

        if not quiet:
            print("  ✓ Schema initialized", file=sys.stderr)

    def is_initialized(self) -> bool:
        """Check if database has been initialized (has the devices table)."""
        try:
            self.conn.execute("SELECT 1 FROM devices LIMIT 1")
            return True
        except duckdb.Error:
            return False

    def validate_schema(self, quiet: bool = True) -> bool:
        """Validate that database schema matches Pydantic models.

        Args:
            quiet: If True, suppress success messages (only show errors)

        Returns:
            True if all tables valid, False if any mismatches found
        """
        if not quiet:
            print("Validating database schema...", file=sys.stderr)

        all_valid = True
        for model in ALL_MODELS:
            is_valid, errors = validate_table_schema(self.conn, model)
            table_name = table_name_of(model)
            if not is_valid:
                all_valid = False
                print(f"  ✗ {table_name}:", file=sys.stderr)
                for error in errors:
                    print(f"      {error}", file=sys.stderr)
            elif not quiet:
                print(f"  ✓ {table_name}", file=sys.stderr)

        return all_valid

    def setup(self, quiet: bool = True) -> None:
        """Complete database setup: initialize + validate.

        Raises:
            RuntimeError: If schema validation fails
        """
        self.initialize_schema(quiet=quiet)

        if not self.validate_schema(quiet=quiet):
            raise RuntimeError(
                "Database schema validation failed. "
                "The database was created by an incompatible version; "
                "delete it and reinitialize."
            )

        if not quiet:
            print("Database setup complete", file=sys.stderr)

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
