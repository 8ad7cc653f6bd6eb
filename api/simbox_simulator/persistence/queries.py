"""
Analytical Query Interface

Pre-defined queries over generated traffic and detection results.
All functions return Polars DataFrames.
"""

import duckdb
import polars as pl

# Reason recorded for devices found in a suspicious cohort
COHORT_REASON = "cell_cohort"


# ============================================================================
# Movement Signatures
# ============================================================================


def get_top_signatures(conn: duckdb.DuckDBPyConnection, limit: int) -> pl.DataFrame:
    """Most common movement signatures.

    Args:
        conn: DuckDB connection
        limit: Maximum number of rows

    Returns:
        Polars DataFrame with columns:
        - signature: Six-cell history, newest first
        - how_many: Devices currently carrying it

        Ordered by how_many descending, then signature.

    Examples:
        >>> df = get_top_signatures(conn, 20)
        >>> df["how_many"][0]
        50
    """
    query = """
        SELECT signature, how_many
        FROM last_6_cells
        ORDER BY how_many DESC, signature
        LIMIT ?
    """

    return conn.execute(query, [limit]).pl()


def get_devices_with_signature(
    conn: duckdb.DuckDBPyConnection, signature: str
) -> pl.DataFrame:
    """Devices whose current signature is ``signature``.

    Returns:
        Polars DataFrame with columns device_id, current_cell_id,
        ordered by device_id
    """
    query = """
        SELECT device_id, current_cell_id
        FROM devices
        WHERE cell_history_last6 = ?
        ORDER BY device_id
    """

    return conn.execute(query, [signature]).pl()


# ============================================================================
# Detection Results
# ============================================================================


def list_cohorts(conn: duckdb.DuckDBPyConnection, limit: int = 50) -> pl.DataFrame:
    """Detected cohorts, most recently detected first."""
    query = """
        SELECT signature, detected_at, cell_id, member_count
        FROM suspicious_cohorts
        ORDER BY detected_at DESC, signature
        LIMIT ?
    """

    return conn.execute(query, [limit]).pl()


def get_cohort_members(conn: duckdb.DuckDBPyConnection, signature: str) -> pl.DataFrame:
    """Recorded members of one cohort.

    Returns:
        Polars DataFrame with columns device_id, detected_at, cell_id,
        ordered by device_id
    """
    query = """
        SELECT device_id, detected_at, cell_id
        FROM suspicious_cohort_members
        WHERE signature = ?
        ORDER BY device_id
    """

    return conn.execute(query, [signature]).pl()


def get_suspect_status(
    conn: duckdb.DuckDBPyConnection, device_ids: list[int]
) -> pl.DataFrame:
    """Count the given devices by why (or whether) they are suspected.

    Args:
        conn: DuckDB connection
        device_ids: Devices to classify

    Returns:
        Polars DataFrame with columns:
        - suspicious_because: Reason, or null for devices not suspected
        - how_many: Number of the given devices with that reason

    Examples:
        >>> get_suspect_status(conn, simbox.member_ids)
        shape: (2, 2)
        ┌────────────────────┬──────────┐
        │ suspicious_because ┆ how_many │
        ╞════════════════════╪══════════╡
        │ null               ┆ 12       │
        │ cell_cohort        ┆ 38       │
        └────────────────────┴──────────┘
    """
    ids = pl.DataFrame({"device_id": device_ids}, schema={"device_id": pl.Int64})

    query = f"""
        SELECT
            CASE WHEN m.device_id IS NULL THEN NULL ELSE '{COHORT_REASON}' END
                AS suspicious_because,
            COUNT(*) AS how_many
        FROM ids
        LEFT JOIN (
            SELECT DISTINCT device_id FROM suspicious_cohort_members
        ) m ON ids.device_id = m.device_id
        GROUP BY suspicious_because
        ORDER BY suspicious_because NULLS FIRST
    """

    return conn.execute(query).pl()


# ============================================================================
# Stats & Parameters
# ============================================================================


def get_stat_history(conn: duckdb.DuckDBPyConnection, stat_name: str) -> pl.DataFrame:
    """Per-interval values of one metric, oldest first.

    Returns:
        Polars DataFrame with columns interval_end, stat_value
    """
    query = """
        SELECT interval_end, stat_value
        FROM simbox_stats
        WHERE stat_name = ?
        ORDER BY interval_end
    """

    return conn.execute(query, [stat_name]).pl()


def get_parameters(conn: duckdb.DuckDBPyConnection) -> pl.DataFrame:
    query = """
        SELECT parameter_name, parameter_value
        FROM simbox_parameters
        ORDER BY parameter_name
    """

    return conn.execute(query).pl()
