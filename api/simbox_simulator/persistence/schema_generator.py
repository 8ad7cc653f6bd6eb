"""
DDL Generation from Pydantic Models

Automatically generates CREATE TABLE and CREATE VIEW statements
from the persistence models, plus the matching Polars schemas used for batch
writes. This keeps the database schema in sync with the model definitions.
"""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, Type, get_args, get_origin

import polars as pl
from pydantic import BaseModel


# ============================================================================
# Type Mapping
# ============================================================================

PYTHON_TO_SQL_TYPE_MAP = {
    str: "VARCHAR",
    int: "BIGINT",
    float: "DOUBLE",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP",
}

PYTHON_TO_POLARS_TYPE_MAP: dict[Any, Any] = {
    str: pl.Utf8,
    int: pl.Int64,
    float: pl.Float64,
    bool: pl.Boolean,
    datetime: pl.Datetime("us"),
}

# Aggregate view read by the cohort detector: how many devices currently
# carry each six-cell movement signature.
LAST_6_CELLS_VIEW_DDL = """CREATE OR REPLACE VIEW last_6_cells AS
SELECT
    cell_history_last6 AS signature,
    COUNT(*) AS how_many
FROM devices
WHERE cell_history_last6 IS NOT NULL
GROUP BY cell_history_last6;"""


def _unwrap_optional(py_type: Any) -> Any:
    """Return X for Optional[X] / X | None, else the type unchanged."""
    origin = get_origin(py_type)
    if origin is not None:
        for arg in get_args(py_type):
            if arg is not type(None):
                return arg
    return py_type


def python_type_to_sql_type(py_type: Any) -> str:
    """Convert Python type annotation to SQL type.

    Args:
        py_type: Python type annotation (can be Optional, Enum, etc.)

    Returns:
        SQL type string (VARCHAR, BIGINT, etc.)

    Examples:
        >>> python_type_to_sql_type(str)
        'VARCHAR'
        >>> python_type_to_sql_type(int | None)
        'BIGINT'
        >>> python_type_to_sql_type(datetime)
        'TIMESTAMP'
    """
    py_type = _unwrap_optional(py_type)

    # Enums are stored by value
    if inspect.isclass(py_type) and issubclass(py_type, Enum):
        return "VARCHAR"

    return PYTHON_TO_SQL_TYPE_MAP.get(py_type, "VARCHAR")


def python_type_to_polars_type(py_type: Any) -> Any:
    """Convert Python type annotation to the Polars dtype used for batch writes."""
    py_type = _unwrap_optional(py_type)

    if inspect.isclass(py_type) and issubclass(py_type, Enum):
        return pl.Utf8

    return PYTHON_TO_POLARS_TYPE_MAP.get(py_type, pl.Utf8)


def polars_schema(model: Type[BaseModel]) -> dict[str, Any]:
    """Polars schema (column order = model field order) for a table model.

    Examples:
        >>> from simbox_simulator.persistence.models import CellRecord
        >>> polars_schema(CellRecord)
        {'cell_id': Int64}
    """
    return {
        name: python_type_to_polars_type(info.annotation)
        for name, info in model.model_fields.items()
    }


def table_name_of(model: Type[BaseModel]) -> str:
    config = model.model_config
    if "table_name" not in config:
        raise ValueError(f"Model {model.__name__} missing model_config['table_name']")
    return config["table_name"]  # type: ignore[typeddict-item]


def primary_key_of(model: Type[BaseModel]) -> list[str]:
    return list(model.model_config.get("primary_key", []))  # type: ignore[arg-type]


# ============================================================================
# DDL Generation
# ============================================================================


def generate_create_table_ddl(model: Type[BaseModel]) -> str:
    """Generate CREATE TABLE DDL from Pydantic model.

    Args:
        model: Pydantic model class with model_config["table_name"]

    Returns:
        SQL CREATE TABLE statement

    Raises:
        ValueError: If model is missing required configuration

    Examples:
        >>> from simbox_simulator.persistence.models import DeviceRecord
        >>> ddl = generate_create_table_ddl(DeviceRecord)
        >>> "CREATE TABLE IF NOT EXISTS devices" in ddl
        True
    """
    table_name = table_name_of(model)
    primary_key = primary_key_of(model)

    columns = []
    for field_name, field_info in model.model_fields.items():
        py_type = field_info.annotation
        sql_type = python_type_to_sql_type(py_type)
        null_constraint = "" if _is_field_optional(py_type, field_info) else " NOT NULL"
        columns.append(f"    {field_name} {sql_type}{null_constraint}")

    if primary_key:
        pk_cols = ", ".join(primary_key)
        columns.append(f"    PRIMARY KEY ({pk_cols})")

    ddl = f"CREATE TABLE IF NOT EXISTS {table_name} (\n"
    ddl += ",\n".join(columns)
    ddl += "\n);"

    return ddl


def generate_full_schema_ddl() -> str:
    """Generate complete schema DDL for all models.

    Returns:
        SQL DDL for all tables and the last_6_cells view

    Examples:
        >>> ddl = generate_full_schema_ddl()
        >>> "suspicious_cohorts" in ddl
        True
        >>> "last_6_cells" in ddl
        True
    """
    from .models import ALL_MODELS

    ddl_parts = []

    for model in ALL_MODELS:
        ddl_parts.append(generate_create_table_ddl(model))

    ddl_parts.append(LAST_6_CELLS_VIEW_DDL)

    return "\n\n".join(ddl_parts)


# ============================================================================
# Helper Functions
# ============================================================================


def _is_field_optional(py_type: Any, field_info: Any) -> bool:
    """Check if a field is optional (nullable).

    Args:
        py_type: Field type annotation
        field_info: Pydantic FieldInfo object

    Returns:
        True if field can be None
    """
    origin = get_origin(py_type)
    if origin is not None and type(None) in get_args(py_type):
        return True

    if getattr(field_info, "default", ...) is None:
        return True

    return False


# ============================================================================
# Schema Validation
# ============================================================================


def validate_table_schema(conn: Any, model: Type[BaseModel]) -> tuple[bool, list[str]]:
    """Validate that database table schema matches Pydantic model.

    Args:
        conn: DuckDB connection
        model: Pydantic model to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    table_name = table_name_of(model)
    errors = []

    try:
        # DuckDB DESCRIBE returns: column_name, column_type, null, key, default, extra
        result = conn.execute(f"DESCRIBE {table_name}").fetchall()
        db_columns = {row[0]: row[1] for row in result}
    except Exception as e:
        return False, [f"Table {table_name} does not exist: {e}"]

    model_fields = set(model.model_fields.keys())
    db_fields = set(db_columns.keys())

    for col in sorted(model_fields - db_fields):
        errors.append(f"Column '{col}' missing from table {table_name}")

    extra_columns = db_fields - model_fields
    if extra_columns:
        errors.append(f"Unexpected columns in {table_name}: {sorted(extra_columns)}")

    return len(errors) == 0, errors
