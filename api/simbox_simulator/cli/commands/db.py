"""
Database Management CLI Commands

- init: Initialize and validate the database schema
- list: List tables with their row counts
"""

from __future__ import annotations

from typing import Annotated

import duckdb
import typer
from rich.console import Console
from rich.table import Table

from simbox_simulator.persistence.connection import DatabaseManager
from simbox_simulator.persistence.models import ALL_MODELS
from simbox_simulator.persistence.schema_generator import table_name_of

# Create sub-app for database commands
db_app = typer.Typer(help="Database management commands")
console = Console()


@db_app.command("init")
def db_init(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "simbox_data.db",
) -> None:
    """Initialize database schema from the persistence models."""
    try:
        console.print(f"[yellow]Initializing database at {db_path}...[/yellow]")

        with DatabaseManager(db_path) as manager:
            manager.setup()

        console.print(f"[green]✓ Database initialized at {db_path}[/green]")

    except (duckdb.Error, RuntimeError) as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(code=1)


@db_app.command("list")
def db_list(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "simbox_data.db",
) -> None:
    """List simulator tables and how many rows each holds."""
    try:
        with DatabaseManager(db_path) as manager:
            if not manager.is_initialized():
                console.print("[yellow]Database not initialized; run 'simbox-sim db init'[/yellow]")
                raise typer.Exit(code=1)

            counts = [
                (
                    table_name_of(model),
                    manager.conn.execute(
                        f"SELECT COUNT(*) FROM {table_name_of(model)}"
                    ).fetchone()[0],
                )
                for model in ALL_MODELS
            ]

    except duckdb.Error as e:
        console.print(f"[red]✗ Error listing tables: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Database Tables")
    table.add_column("Table Name", style="cyan")
    table.add_column("Rows", justify="right", style="magenta")

    for table_name, row_count in counts:
        table.add_row(table_name, f"{row_count:,}")

    console.print(table)
