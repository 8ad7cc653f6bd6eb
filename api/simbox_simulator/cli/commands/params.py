"""
Parameter CLI Commands

Toggles read by a running generator once per reporting interval:
- ENABLE_SUSPICIOUS_COHORT_DETECTION: run the cohort detector (1 = on)
- SIMBOX_CALLS_ITSELF: let SIM box members call each other (1 = on)
"""

from __future__ import annotations

from typing import Annotated

import duckdb
import typer
from rich.console import Console
from rich.table import Table

from simbox_simulator.persistence.connection import DatabaseManager
from simbox_simulator.persistence.queries import get_parameters
from simbox_simulator.persistence.store import DETECTION_TOGGLE, SELF_CALLS_TOGGLE, DuckDBStore

params_app = typer.Typer(help="Show and change generator toggles")
console = Console()

KNOWN_TOGGLES = (DETECTION_TOGGLE, SELF_CALLS_TOGGLE)


@params_app.command("set")
def params_set(
    name: Annotated[str, typer.Argument(help=f"Toggle name ({', '.join(KNOWN_TOGGLES)})")],
    value: Annotated[int, typer.Argument(help="New value (1 = on, 0 = off)")],
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "simbox_data.db",
) -> None:
    """Set a toggle."""
    name = name.upper()
    if name not in KNOWN_TOGGLES:
        console.print(f"[red]✗ Unknown toggle {name}; expected one of {', '.join(KNOWN_TOGGLES)}[/red]")
        raise typer.Exit(code=1)

    try:
        manager = DatabaseManager(db_path)
        manager.setup()
        with DuckDBStore(manager) as store:
            store.set_toggle(name, value)

        console.print(f"[green]✓ {name} = {value}[/green]")

    except (duckdb.Error, RuntimeError) as e:
        console.print(f"[red]✗ Error setting {name}: {e}[/red]")
        raise typer.Exit(code=1)


@params_app.command("show")
def params_show(
    db_path: Annotated[
        str,
        typer.Option("--db-path", "-d", help="Path to database file"),
    ] = "simbox_data.db",
) -> None:
    """Show every toggle (unset toggles default to 0)."""
    try:
        with DatabaseManager(db_path) as manager:
            manager.setup()
            values = dict(get_parameters(manager.conn).rows())

    except (duckdb.Error, RuntimeError) as e:
        console.print(f"[red]✗ Error reading parameters: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Generator Toggles")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", justify="right", style="magenta")

    for name in sorted(set(KNOWN_TOGGLES) | set(values)):
        table.add_row(name, str(values.get(name, 0)))

    console.print(table)
