"""Configuration module for the SIM box simulator."""
from pydantic import ValidationError

from .loader import load_settings
from .schemas import (
    DetectionSettings,
    GeneratorSettings,
    RunArguments,
    SimboxSettings,
    check_simbox_fits,
)

__all__ = [
    "DetectionSettings",
    "GeneratorSettings",
    "RunArguments",
    "SimboxSettings",
    "ValidationError",
    "check_simbox_fits",
    "load_settings",
]
