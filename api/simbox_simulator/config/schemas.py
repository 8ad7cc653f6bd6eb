"""Pydantic schemas for generator settings and run arguments."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

# ============================================================================
# SIM box Settings
# ============================================================================

class SimboxSettings(BaseModel):
    """Size and behaviour of the fraudulent SIM box cohort."""
    capacity: int = Field(200, description="Maximum number of SIMs in the box", ge=0)
    enrollment_probability: float = Field(
        0.01,
        description="Chance a newly provisioned device is placed in the box",
        ge=0.0,
        le=1.0,
    )
    fraud_route_probability: float = Field(
        0.5,
        description="Chance a call from a box SIM is re-routed as international traffic",
        ge=0.0,
        le=1.0,
    )
    revenue_per_minute: float = Field(
        0.10, description="Projected fraud revenue per re-routed minute", ge=0.0
    )
    initial_cell_id: int = Field(0, description="Cell the box starts in", ge=0)


# ============================================================================
# Detection Settings
# ============================================================================

class DetectionSettings(BaseModel):
    """Thresholds for the suspicious cohort detection pass."""
    view_size: int = Field(
        20, description="How many signatures must exist before detection runs", ge=2
    )
    suspicious_size: int = Field(
        100, description="Devices sharing a signature before it is suspicious", ge=0
    )
    dominance_ratio: int = Field(
        2, description="Busiest signature must exceed the view_size-th by this factor", ge=1
    )


# ============================================================================
# Generator Settings (root)
# ============================================================================

class GeneratorSettings(BaseModel):
    """Tunables of the synthetic event generator.

    Every field has a default, so an empty settings file is valid.
    """
    random_search_attempts: int = Field(
        30, description="Probes when looking for a non-busy device", gt=0
    )
    max_call_seconds: int = Field(60, description="Upper bound of a call's length", gt=0)
    warmup_moves: int = Field(6, description="Cell moves per device before the run", ge=0)
    mobility_probability_denominator: int = Field(
        20, description="An idle caller moves cell one time in N", gt=0
    )
    resident_minutes_before_move: float = Field(
        2.0, description="Minimum minutes in a cell before an ordinary move", ge=0.0
    )
    simbox_relocation_minutes: float = Field(
        2.0, description="Minutes between SIM box relocations", ge=0.0
    )
    reporting_interval_seconds: float = Field(
        60.0, description="Wall-clock seconds between detection/stats passes", gt=0.0
    )
    mobility_mode: Literal["random", "adjacent"] = Field(
        "random", description="Destination of an ordinary cell move"
    )
    selection_strategy: Literal["probe", "idle_set"] = Field(
        "probe", description="How non-busy callers and callees are found"
    )
    write_batch_size: int = Field(
        5000, description="Buffered rows per table before a flush", gt=0
    )
    rng_seed: int | None = Field(None, description="Seed for reproducible runs")
    simbox: SimboxSettings = Field(default_factory=SimboxSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)

    @classmethod
    def from_dict(cls, data: dict) -> GeneratorSettings:
        """Create settings from a dictionary (as loaded from YAML)."""
        return cls.model_validate(data)


# ============================================================================
# Run Arguments
# ============================================================================

class RunArguments(BaseModel):
    """The five positional arguments of a generator run."""
    hostnames: str = Field(..., description="Comma-separated store endpoints")
    user_count: int = Field(..., description="Devices to provision", ge=2)
    tpms: int = Field(..., description="Target event cost per millisecond", gt=0)
    duration_seconds: int = Field(..., description="How long to generate traffic", ge=0)
    cell_count: int = Field(..., description="Number of network cells", gt=0)

    @field_validator("hostnames")
    @classmethod
    def hostnames_not_blank(cls, v: str) -> str:
        """Require at least one non-empty endpoint."""
        if not [h for h in v.split(",") if h.strip()]:
            raise ValueError("at least one store endpoint is required")
        return v

    @property
    def endpoints(self) -> list[str]:
        return [h.strip() for h in self.hostnames.split(",") if h.strip()]


def check_simbox_fits(args: RunArguments, settings: GeneratorSettings) -> None:
    """Reject settings whose initial SIM box cell is outside the cell space."""
    if settings.simbox.initial_cell_id >= args.cell_count:
        raise ValueError(
            f"simbox.initial_cell_id {settings.simbox.initial_cell_id} "
            f"is outside 0..{args.cell_count - 1}"
        )
