"""Cohorts command - list suspicious cohorts found by the detector."""

from __future__ import annotations

from typing import Annotated

import duckdb
import typer
from rich.console import Console
from rich.table import Table

from simbox_simulator.persistence.connection import DatabaseManager
from simbox_simulator.persistence.queries import get_cohort_members, list_cohorts

console = Console()


def show_cohorts(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "simbox_data.db",
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum cohorts to list", min=1),
    ] = 20,
    members: Annotated[
        bool,
        typer.Option("--members", "-m", help="Also list member device ids"),
    ] = False,
) -> None:
    """List detected cohorts, most recent first."""
    try:
        member_ids: dict[str, list[int]] = {}
        with DatabaseManager(db_path) as manager:
            manager.setup()
            cohorts = list_cohorts(manager.conn, limit)
            if members:
                for signature in cohorts["signature"].to_list():
                    member_ids[signature] = get_cohort_members(manager.conn, signature)[
                        "device_id"
                    ].to_list()

    except (duckdb.Error, RuntimeError) as e:
        console.print(f"[red]✗ Error reading cohorts: {e}[/red]")
        raise typer.Exit(code=1)

    if cohorts.is_empty():
        console.print("[yellow]No suspicious cohorts recorded[/yellow]")
        return

    table = Table(title="Suspicious Cohorts")
    table.add_column("Signature", style="cyan")
    table.add_column("Detected At")
    table.add_column("Cell", justify="right")
    table.add_column("Members", justify="right", style="magenta")

    for row in cohorts.iter_rows(named=True):
        table.add_row(
            row["signature"],
            str(row["detected_at"]),
            str(row["cell_id"]),
            str(row["member_count"]),
        )

    console.print(table)

    for signature, ids in member_ids.items():
        console.print(f"[cyan]{signature}[/cyan]: {', '.join(str(i) for i in ids)}")
