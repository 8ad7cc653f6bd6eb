"""Run command - generate SIM box traffic against a DuckDB store."""

from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.markup import escape
from typing_extensions import Annotated

from simbox_simulator.cli.execution import ConsoleOutput, QuietOutput
from simbox_simulator.cli.output import (
    configure_logging,
    console,
    log_error,
    log_info,
    output_json,
)
from simbox_simulator.config import (
    GeneratorSettings,
    RunArguments,
    check_simbox_fits,
    load_settings,
)
from simbox_simulator.core.context import SimulationContext
from simbox_simulator.core.engine import EventEngine
from simbox_simulator.errors import ConfigurationError, ConnectionFailure
from simbox_simulator.persistence.store import connect_store

RUN_USAGE = "Usage: simbox-sim run HOSTNAMES USER_COUNT TPMS DURATION_SECONDS CELL_COUNT"


def resolve_configuration(
    hostnames: str,
    user_count: int,
    tpms: int,
    duration_seconds: int,
    cell_count: int,
    config: Optional[Path] = None,
    seed: Optional[int] = None,
) -> tuple[RunArguments, GeneratorSettings]:
    """Validate the positional arguments and load settings.

    Raises:
        ConfigurationError: If any argument or setting is invalid
    """
    try:
        run_args = RunArguments(
            hostnames=hostnames,
            user_count=user_count,
            tpms=tpms,
            duration_seconds=duration_seconds,
            cell_count=cell_count,
        )
        settings = load_settings(config) if config is not None else GeneratorSettings()
        if seed is not None:
            settings = settings.model_copy(update={"rng_seed": seed})
        check_simbox_fits(run_args, settings)
    except (ValidationError, ValueError, FileNotFoundError, yaml.YAMLError) as e:
        raise ConfigurationError(str(e)) from e

    return run_args, settings


def run_generator(
    hostnames: Annotated[
        str, typer.Argument(help="Comma-separated DuckDB paths (':memory:' allowed)")
    ],
    user_count: Annotated[int, typer.Argument(help="Devices to provision")],
    tpms: Annotated[int, typer.Argument(help="Target load per millisecond")],
    duration_seconds: Annotated[int, typer.Argument(help="How long to generate traffic")],
    cell_count: Annotated[int, typer.Argument(help="Number of network cells")],
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Generator settings (YAML)",
            dir_okay=False,
        ),
    ] = None,
    seed: Annotated[
        Optional[int],
        typer.Option("--seed", "-s", help="Override RNG seed"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress logs (stdout only)"),
    ] = False,
):
    """Generate call and mobility events, with a SIM box hiding in the crowd.

    Examples:

        # 1000 devices, 10 cells, 5 units/ms for two minutes
        simbox-sim run simbox.db 1000 5 120 10

        # Reproducible run with custom settings, JSON summary only
        simbox-sim run simbox.db 1000 5 120 10 --config settings.yaml --seed 42 --quiet
    """
    configure_logging(quiet)

    try:
        run_args, settings = resolve_configuration(
            hostnames, user_count, tpms, duration_seconds, cell_count, config, seed
        )
        log_info(f"Connecting to {', '.join(run_args.endpoints)}", quiet)
        store = connect_store(run_args.endpoints, batch_size=settings.write_batch_size)
    except ConfigurationError as e:
        log_error(f"Invalid configuration: {escape(str(e))}")
        console.print(RUN_USAGE)
        raise typer.Exit(1)
    except ConnectionFailure as e:
        log_error(escape(str(e)))
        raise typer.Exit(1)

    ctx = SimulationContext.create(seed=settings.rng_seed)
    output = QuietOutput() if quiet else ConsoleOutput()

    with store:
        summary = EventEngine(store, run_args, settings, ctx, output=output).run()

    output_json(summary)
