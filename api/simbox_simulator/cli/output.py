"""Output formatting utilities for CLI.

- stdout = machine-readable data (the JSON run summary)
- stderr = human-readable logs (phase changes, interval stats, errors)

so that ``simbox-sim run ... > summary.json`` keeps the status lines on the
terminal.
"""

import json
import logging
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# stderr console for human logs (preserves colors when redirected)
console = Console(stderr=True)


def configure_logging(quiet: bool = False) -> None:
    """Route library log records to the stderr console."""
    logging.basicConfig(
        level=logging.ERROR if quiet else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def output_json(data: Any, indent: Optional[int] = 2):
    """Output JSON to stdout (machine-readable).

    Args:
        data: Data to serialize as JSON
        indent: Indentation level (None for compact)
    """
    print(json.dumps(data, indent=indent, default=str), flush=True)


def log_info(message: str, quiet: bool = False):
    """Log info message to stderr.

    Args:
        message: Message to log
        quiet: If True, suppress output
    """
    if not quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def log_success(message: str, quiet: bool = False):
    if not quiet:
        console.print(f"[green]✓[/green] {message}")


def log_error(message: str):
    """Log error message to stderr (always shown)."""
    console.print(f"[red]✗[/red] {message}", style="bold red")


def log_warning(message: str, quiet: bool = False):
    if not quiet:
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")


# ============================================================================
# Interval Reporting
# ============================================================================


def log_interval_metrics(metrics: dict[str, int], simbox: str) -> None:
    """Print one interval's published metrics as a compact table."""
    table = Table(title="Interval stats", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="magenta")

    for name, value in metrics.items():
        table.add_row(name, f"{value:,}")

    console.print(table)
    console.print(f"[dim]{simbox}[/dim]")
