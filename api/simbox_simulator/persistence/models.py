"""
Pydantic Models for Persistence Layer

These models are the single source of truth for database schema.
All DDL generation is derived from these models; ``model_config`` carries
the table name and primary key.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Enums
# ============================================================================


class CallTypeColumn(str, Enum):
    """Values of call_events.call_type."""

    ORDINARY = "ordinary"
    INTERNATIONAL = "international"


# ============================================================================
# Network Topology
# ============================================================================


class CellRecord(BaseModel):
    """A network cell."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="cells",
        primary_key=["cell_id"],
    )

    cell_id: int = Field(..., description="Cell identifier", ge=0)


class DeviceRecord(BaseModel):
    """Current state of a device.

    ``cell_history_last6`` is the device's movement signature: its last six
    cells, newest first, comma separated. It is NULL until six cells are known.
    """

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="devices",
        primary_key=["device_id"],
    )

    device_id: int = Field(..., description="Device identifier", ge=0)
    current_cell_id: int = Field(..., description="Cell the device is in")
    created_at: datetime = Field(..., description="When the device was provisioned")
    last_cell_change_at: datetime = Field(..., description="Most recent cell change")
    call_end_at: datetime | None = Field(None, description="Busy until (if ever called)")
    cell_history_last6: str | None = Field(None, description="Movement signature")


# ============================================================================
# Event Records
# ============================================================================


class CellChangeEventRecord(BaseModel):
    """A device moving between cells."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="cell_change_events",
        primary_key=["event_id"],
    )

    event_id: str = Field(..., description="Unique event identifier")
    device_id: int = Field(..., description="Device that moved")
    from_cell_id: int = Field(..., description="Previous cell")
    to_cell_id: int = Field(..., description="New cell")
    changed_at: datetime = Field(..., description="When the move happened")
    is_simbox_move: bool = Field(..., description="Move caused by SIM box relocation")


class CallEventRecord(BaseModel):
    """A call between two devices."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="call_events",
        primary_key=["event_id"],
    )

    event_id: str = Field(..., description="Unique event identifier")
    caller_id: int = Field(..., description="Calling device")
    callee_id: int = Field(..., description="Called device")
    caller_cell_id: int = Field(..., description="Caller's cell at call start")
    callee_cell_id: int = Field(..., description="Callee's cell at call start")
    started_at: datetime = Field(..., description="Call start")
    duration_seconds: int = Field(..., description="Call length", ge=0)
    call_type: CallTypeColumn = Field(..., description="Ordinary or re-routed")


# ============================================================================
# Detection Records
# ============================================================================


class SuspiciousCohortRecord(BaseModel):
    """A movement signature flagged as a suspicious cohort."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="suspicious_cohorts",
        primary_key=["signature"],
    )

    signature: str = Field(..., description="Shared six-cell history")
    detected_at: datetime = Field(..., description="Most recent detection")
    cell_id: int = Field(..., description="Cohort location at detection")
    member_count: int = Field(..., description="Devices carrying the signature", ge=0)


class SuspiciousCohortMemberRecord(BaseModel):
    """A device belonging to a suspicious cohort."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="suspicious_cohort_members",
        primary_key=["signature", "device_id"],
    )

    signature: str = Field(..., description="Cohort signature")
    device_id: int = Field(..., description="Member device")
    detected_at: datetime = Field(..., description="Most recent detection")
    cell_id: int = Field(..., description="Cohort location at detection")


# ============================================================================
# Stats & Parameters
# ============================================================================


class SimboxStatRecord(BaseModel):
    """One metric value for one reporting interval."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simbox_stats",
        primary_key=["stat_name", "interval_end"],
    )

    stat_name: str = Field(..., description="Metric name")
    interval_end: datetime = Field(..., description="End of the reporting interval")
    stat_value: int = Field(..., description="Value for that interval only")


class SimboxParameterRecord(BaseModel):
    """Externally controlled toggle."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="simbox_parameters",
        primary_key=["parameter_name"],
    )

    parameter_name: str = Field(..., description="Toggle name")
    parameter_value: int = Field(..., description="Toggle value (1 = on)")


ALL_MODELS: list[type[BaseModel]] = [
    CellRecord,
    DeviceRecord,
    CellChangeEventRecord,
    CallEventRecord,
    SuspiciousCohortRecord,
    SuspiciousCohortMemberRecord,
    SimboxStatRecord,
    SimboxParameterRecord,
]

TABLE_MODELS: dict[str, type[BaseModel]] = {
    model.model_config["table_name"]: model  # type: ignore[typeddict-item]
    for model in ALL_MODELS
}
