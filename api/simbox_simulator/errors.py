"""Error taxonomy for the SIM box simulator.

Fatal errors (ConfigurationError, ConnectionFailure) stop a run before the
simulation starts. TransientWriteFailure and DetectionQueryFailure are caught
by the engine, logged and counted; the run continues.
"""


class SimboxError(Exception):
    """Base class for all simulator errors."""


class ConfigurationError(SimboxError):
    """Malformed command-line arguments or settings file."""


class ConnectionFailure(SimboxError):
    """No store endpoint could be opened at startup."""

    def __init__(self, endpoints: list[str], reasons: dict[str, str] | None = None):
        self.endpoints = endpoints
        self.reasons = reasons or {}
        detail = "; ".join(f"{ep}: {why}" for ep, why in self.reasons.items())
        message = f"No usable store endpoint in {endpoints}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TransientWriteFailure(SimboxError):
    """A batch of store writes failed and was dropped."""

    def __init__(self, table: str, row_count: int, cause: Exception):
        self.table = table
        self.row_count = row_count
        self.cause = cause
        super().__init__(f"Dropped {row_count} row(s) for {table}: {cause}")


class DetectionQueryFailure(SimboxError):
    """A cohort detection pass failed and was rolled back."""
