"""SIM box simulator CLI - Main entry point."""

import typer
from typing_extensions import Annotated

app = typer.Typer(
    name="simbox-sim",
    help="SIM box fraud simulator - synthetic call traffic with a hidden fraud cohort",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from simbox_simulator import __version__
        from simbox_simulator.cli.output import console

        console.print(f"[bold]SIM box simulator[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """SIM box simulator CLI - generate traffic, flag cohorts, inspect results."""
    pass


# Import commands after app is defined to avoid circular imports
from simbox_simulator.cli.commands.cohorts import show_cohorts
from simbox_simulator.cli.commands.db import db_app
from simbox_simulator.cli.commands.params import params_app
from simbox_simulator.cli.commands.run import run_generator

app.command(name="run", help="Generate traffic: HOSTNAMES USER_COUNT TPMS DURATION_SECONDS CELL_COUNT")(run_generator)
app.command(name="cohorts", help="List detected suspicious cohorts")(show_cohorts)
app.add_typer(params_app, name="params")
app.add_typer(db_app, name="db")


if __name__ == "__main__":
    app()
