"""
Device state and the events it emits.

A DeviceState is created at provisioning and mutated only by call and
mobility operations. Each mutation returns an event whose ``to_record()``
matches a row of the corresponding persistence table.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from .context import ONE_MINUTE_MS, ms_to_datetime

if TYPE_CHECKING:
    from .simbox import SimBoxEntity

# Number of recent cells that make up a movement signature
HISTORY_LENGTH = 6


class CallType(str, Enum):
    """How a call was routed."""

    ORDINARY = "ordinary"
    INTERNATIONAL = "international"  # Re-routed through the SIM box


@dataclass(frozen=True)
class CellChangeEvent:
    """A device moved from one cell to another."""

    table: ClassVar[str] = "cell_change_events"
    cost: ClassVar[int] = 1

    event_id: str
    device_id: int
    from_cell_id: int
    to_cell_id: int
    changed_at: int
    is_simbox_move: bool = False

    def to_record(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "device_id": self.device_id,
            "from_cell_id": self.from_cell_id,
            "to_cell_id": self.to_cell_id,
            "changed_at": ms_to_datetime(self.changed_at),
            "is_simbox_move": self.is_simbox_move,
        }


@dataclass(frozen=True)
class CallEvent:
    """A call between two devices, busy for ``duration_seconds``."""

    table: ClassVar[str] = "call_events"
    cost: ClassVar[int] = 2

    event_id: str
    caller_id: int
    callee_id: int
    caller_cell_id: int
    callee_cell_id: int
    started_at: int
    duration_seconds: int
    call_type: CallType = CallType.ORDINARY
    revenue: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "caller_id": self.caller_id,
            "callee_id": self.callee_id,
            "caller_cell_id": self.caller_cell_id,
            "callee_cell_id": self.callee_cell_id,
            "started_at": ms_to_datetime(self.started_at),
            "duration_seconds": self.duration_seconds,
            "call_type": self.call_type.value,
        }


@dataclass
class DeviceState:
    """Mutable per-device record.

    Attributes:
        device_id: Stable integer handle (index into the device registry)
        current_cell_id: Cell the device is attached to
        created_at: Provisioning time (epoch ms)
        last_cell_change_at: Time of the latest cell change (epoch ms)
        call_end_at: Busy-until marker (epoch ms); idle once now reaches it
        cell_history: Most recent cells, newest first, at most HISTORY_LENGTH

    Example:
        >>> device = DeviceState(7, current_cell_id=3, created_at=0)
        >>> _ = device.change_cell(4, now_ms=1000)
        >>> device.cell_history
        [4, 3]
    """

    device_id: int
    current_cell_id: int
    created_at: int
    last_cell_change_at: int | None = None
    call_end_at: int = 0
    cell_history: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.last_cell_change_at is None:
            self.last_cell_change_at = self.created_at
        if not self.cell_history:
            self.cell_history = [self.current_cell_id]

    # ------------------------------------------------------------------
    # Mobility
    # ------------------------------------------------------------------

    def change_cell(
        self,
        new_cell_id: int,
        now_ms: int,
        cell_count: int | None = None,
        is_simbox_move: bool = False,
    ) -> CellChangeEvent:
        """Record a move to ``new_cell_id``.

        The move is unconditional (moving to the current cell still counts);
        only the cell id range is checked.

        Raises:
            ValueError: If new_cell_id is negative or not below cell_count
        """
        if new_cell_id < 0 or (cell_count is not None and new_cell_id >= cell_count):
            raise ValueError(f"Cell id {new_cell_id} out of range (cell_count={cell_count})")

        from_cell_id = self.current_cell_id
        self.current_cell_id = new_cell_id
        self.last_cell_change_at = now_ms
        self.cell_history.insert(0, new_cell_id)
        del self.cell_history[HISTORY_LENGTH:]

        return CellChangeEvent(
            event_id=str(uuid.uuid4()),
            device_id=self.device_id,
            from_cell_id=from_cell_id,
            to_cell_id=new_cell_id,
            changed_at=now_ms,
            is_simbox_move=is_simbox_move,
        )

    def resident_for(self, minutes: float, now_ms: int) -> bool:
        """True once the device has stayed in its cell for at least ``minutes``."""
        return now_ms - self.last_cell_change_at >= minutes * ONE_MINUTE_MS

    @property
    def signature(self) -> str | None:
        """Movement signature (newest cell first), or None until the history is full."""
        if len(self.cell_history) < HISTORY_LENGTH:
            return None
        return ",".join(str(cell_id) for cell_id in self.cell_history)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def is_busy(self, now_ms: int) -> bool:
        return now_ms < self.call_end_at

    def start_call(
        self,
        callee: DeviceState,
        duration_seconds: int,
        now_ms: int,
        call_type: CallType = CallType.ORDINARY,
        revenue: float = 0.0,
    ) -> CallEvent:
        """Mark both parties busy for ``[now, now + duration)`` and return the call."""
        end_ms = now_ms + duration_seconds * 1000
        self.call_end_at = end_ms
        callee.call_end_at = end_ms

        return CallEvent(
            event_id=str(uuid.uuid4()),
            caller_id=self.device_id,
            callee_id=callee.device_id,
            caller_cell_id=self.current_cell_id,
            callee_cell_id=callee.current_cell_id,
            started_at=now_ms,
            duration_seconds=duration_seconds,
            call_type=call_type,
            revenue=revenue,
        )

    def can_call(self, callee_id: int, simbox: SimBoxEntity) -> bool:
        """Callee rule for every selection strategy.

        A device never calls itself, and SIM box ids are excluded unless the
        box is allowed to call itself.
        """
        if callee_id == self.device_id:
            return False
        return simbox.self_calls or not simbox.is_member(callee_id)

    def eligible_callee_count(self, simbox: SimBoxEntity, universe_size: int) -> int:
        """How many ids in ``[0, universe_size)`` pass ``can_call``."""
        eligible = universe_size - 1
        if not simbox.self_calls:
            eligible -= len(simbox) - (1 if simbox.is_member(self.device_id) else 0)
        return max(0, eligible)

    def pick_next_callee(
        self, simbox: SimBoxEntity, rng: random.Random, universe_size: int
    ) -> int:
        """Draw an id uniformly from the ids in ``[0, universe_size)`` that pass ``can_call``.

        Raises:
            ValueError: If no id in the universe is eligible
        """
        if self.eligible_callee_count(simbox, universe_size) == 0:
            raise ValueError(f"No eligible callee for device {self.device_id}")

        while True:
            candidate = rng.randrange(universe_size)
            if self.can_call(candidate, simbox):
                return candidate

    def to_record(self) -> dict[str, Any]:
        """Row for the devices table."""
        return {
            "device_id": self.device_id,
            "current_cell_id": self.current_cell_id,
            "created_at": ms_to_datetime(self.created_at),
            "last_cell_change_at": ms_to_datetime(self.last_cell_change_at),
            "call_end_at": ms_to_datetime(self.call_end_at) if self.call_end_at else None,
            "cell_history_last6": self.signature,
        }
