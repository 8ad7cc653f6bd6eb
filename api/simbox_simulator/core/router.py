"""
Per-attempt routing: who calls whom, and whether the attempt becomes a
fraudulent re-route, a cell move or an ordinary call.

Two device selection strategies share one interface:

- ProbingSelector: bounded-retry random probing of the whole population.
  Cheap when most devices are idle, degrades as occupancy rises.
- IdleSetSelector: keeps an explicit index of idle devices (O(1) random
  choice) plus a min-heap of busy-until times to release devices back.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence

from simbox_simulator.config.schemas import GeneratorSettings

from .context import SimulationContext
from .device import CallEvent, CellChangeEvent, DeviceState
from .simbox import SimBoxEntity


class RouteOutcome(str, Enum):
    """What a routing attempt turned into."""

    BUSY = "busy"  # No idle caller or callee found
    FRAUD_CALL = "fraud_call"
    MOVE = "move"
    CALL = "call"


@dataclass
class RouteResult:
    """Outcome of one routing attempt.

    Attributes:
        outcome: What happened
        events: Events to persist (empty for BUSY)
        devices: Devices whose state changed
    """

    outcome: RouteOutcome
    events: list[CallEvent | CellChangeEvent] = field(default_factory=list)
    devices: list[DeviceState] = field(default_factory=list)

    @property
    def cost(self) -> int:
        return sum(event.cost for event in self.events)


# ============================================================================
# Device Selection
# ============================================================================


class DeviceSelector(Protocol):
    """Finds non-busy callers and callees."""

    def select_caller(self, ctx: SimulationContext) -> DeviceState | None:
        ...

    def select_callee(
        self, caller: DeviceState, simbox: SimBoxEntity, ctx: SimulationContext
    ) -> DeviceState | None:
        ...

    def mark_busy(self, device: DeviceState) -> None:
        ...


class ProbingSelector:
    """Bounded-retry random probing over the device population."""

    def __init__(self, devices: Sequence[DeviceState], attempts: int):
        self.devices = devices
        self.attempts = attempts

    def select_caller(self, ctx: SimulationContext) -> DeviceState | None:
        now = ctx.now_ms()
        for _ in range(self.attempts):
            device = self.devices[ctx.rng.randrange(len(self.devices))]
            if not device.is_busy(now):
                return device
        return None

    def select_callee(
        self, caller: DeviceState, simbox: SimBoxEntity, ctx: SimulationContext
    ) -> DeviceState | None:
        if caller.eligible_callee_count(simbox, len(self.devices)) == 0:
            return None

        now = ctx.now_ms()
        for _ in range(self.attempts):
            callee_id = caller.pick_next_callee(simbox, ctx.rng, len(self.devices))
            device = self.devices[callee_id]
            if not device.is_busy(now):
                return device
        return None

    def mark_busy(self, device: DeviceState) -> None:
        # Busy state is read straight off the device when probing
        pass


class IdleSetSelector:
    """Explicit idle-device index.

    Idle ids live in a list with a position map so that removal is a swap
    with the last element. Busy devices sit in a heap keyed by their
    busy-until time and are released lazily on the next selection.
    """

    def __init__(self, devices: Sequence[DeviceState], attempts: int):
        self.devices = devices
        self.attempts = attempts
        self._idle: list[int] = [d.device_id for d in devices]
        self._position: dict[int, int] = {device_id: i for i, device_id in enumerate(self._idle)}
        self._busy: list[tuple[int, int]] = []

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    def _add_idle(self, device_id: int) -> None:
        if device_id in self._position:
            return
        self._position[device_id] = len(self._idle)
        self._idle.append(device_id)

    def _remove_idle(self, device_id: int) -> None:
        index = self._position.pop(device_id, None)
        if index is None:
            return
        last = self._idle.pop()
        if last != device_id:
            self._idle[index] = last
            self._position[last] = index

    def _release_expired(self, now: int) -> None:
        while self._busy and self._busy[0][0] <= now:
            until, device_id = heapq.heappop(self._busy)
            # Skip stale entries for devices that were made busy again
            if self.devices[device_id].call_end_at == until:
                self._add_idle(device_id)

    def select_caller(self, ctx: SimulationContext) -> DeviceState | None:
        self._release_expired(ctx.now_ms())
        if not self._idle:
            return None
        return self.devices[ctx.rng.choice(self._idle)]

    def select_callee(
        self, caller: DeviceState, simbox: SimBoxEntity, ctx: SimulationContext
    ) -> DeviceState | None:
        self._release_expired(ctx.now_ms())
        for _ in range(self.attempts):
            if not self._idle:
                return None
            device_id = ctx.rng.choice(self._idle)
            if caller.can_call(device_id, simbox):
                return self.devices[device_id]
        return None

    def mark_busy(self, device: DeviceState) -> None:
        self._remove_idle(device.device_id)
        heapq.heappush(self._busy, (device.call_end_at, device.device_id))


def build_selector(
    strategy: str, devices: Sequence[DeviceState], attempts: int
) -> DeviceSelector:
    if strategy == "idle_set":
        return IdleSetSelector(devices, attempts)
    if strategy == "probe":
        return ProbingSelector(devices, attempts)
    raise ValueError(f"Unknown selection strategy: {strategy}")


# ============================================================================
# Call Router
# ============================================================================


class CallRouter:
    """Decides what each generator iteration does.

    Order of precedence for an attempt:
    1. find an idle caller, then an idle callee (else BUSY)
    2. SIM box member caller: try a fraudulent re-route
    3. one time in N, for a caller resident long enough: a cell move
    4. otherwise an ordinary call
    """

    def __init__(
        self,
        devices: Sequence[DeviceState],
        simbox: SimBoxEntity,
        settings: GeneratorSettings,
        cell_count: int,
        selector: DeviceSelector | None = None,
    ):
        self.devices = devices
        self.simbox = simbox
        self.settings = settings
        self.cell_count = cell_count
        self.selector = selector or build_selector(
            settings.selection_strategy, devices, settings.random_search_attempts
        )

    def route(self, ctx: SimulationContext) -> RouteResult:
        caller = self.selector.select_caller(ctx)
        if caller is None:
            return RouteResult(RouteOutcome.BUSY)

        callee = self.selector.select_callee(caller, self.simbox, ctx)
        if callee is None:
            return RouteResult(RouteOutcome.BUSY)

        now = ctx.now_ms()

        fraud_call = self.simbox.attempt_fraud_route(
            caller, callee, ctx.rng, now, self.settings.max_call_seconds
        )
        if fraud_call is not None:
            self._note_call(caller, callee)
            return RouteResult(RouteOutcome.FRAUD_CALL, [fraud_call], [caller, callee])

        if (
            caller.resident_for(self.settings.resident_minutes_before_move, now)
            and ctx.rng.randrange(self.settings.mobility_probability_denominator) == 0
        ):
            destination = self.choose_destination(caller, ctx)
            move = caller.change_cell(destination, now, cell_count=self.cell_count)
            return RouteResult(RouteOutcome.MOVE, [move], [caller])

        duration = ctx.rng.randrange(self.settings.max_call_seconds)
        call = caller.start_call(callee, duration, now)
        self._note_call(caller, callee)
        return RouteResult(RouteOutcome.CALL, [call], [caller, callee])

    def choose_destination(self, device: DeviceState, ctx: SimulationContext) -> int:
        """Cell an ordinary move goes to, per ``settings.mobility_mode``.

        "adjacent" steps one cell up or down with wraparound; "random" draws
        uniformly over the whole cell space.
        """
        if self.settings.mobility_mode == "adjacent":
            if ctx.rng.randrange(2) == 0:
                return (device.current_cell_id + 1) % self.cell_count
            return (device.current_cell_id - 1) % self.cell_count
        return ctx.rng.randrange(self.cell_count)

    def _note_call(self, caller: DeviceState, callee: DeviceState) -> None:
        self.selector.mark_busy(caller)
        self.selector.mark_busy(callee)
