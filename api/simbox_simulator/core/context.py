"""
Simulation context: random source, clock and interval counters.

Everything that would otherwise be ambient state (a shared random generator,
the wall clock, module-level counters) lives here and is passed through
calls, so a seeded context with a manual clock replays a run exactly.
"""

from __future__ import annotations

import random
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Protocol

ONE_MINUTE_MS = 60 * 1000
ONE_DAY_MS = 24 * 60 * ONE_MINUTE_MS
ONE_YEAR_MS = 365 * ONE_DAY_MS


class Clock(Protocol):
    """Wall clock in epoch milliseconds."""

    def now_ms(self) -> int:
        ...

    def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Clock backed by the host's real time."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass
class RunCounters:
    """Interval-scoped tallies of generated traffic.

    Attributes:
        busy_misses: Iterations skipped because no idle caller/callee was found
        fraud_calls: Calls re-routed by the SIM box
        ordinary_calls: Normal calls
        ordinary_moves: Individual device cell changes
        fraud_moves: Cell changes caused by SIM box relocation
        profit: Projected fraud revenue earned in the interval
        failed_writes: Rows dropped by failed store writes
    """

    busy_misses: int = 0
    fraud_calls: int = 0
    ordinary_calls: int = 0
    ordinary_moves: int = 0
    fraud_moves: int = 0
    profit: float = 0.0
    failed_writes: int = 0

    def snapshot(self) -> dict[str, int | float]:
        return asdict(self)

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, type(getattr(self, f.name))())

    def add(self, other: RunCounters) -> None:
        """Accumulate another set of counters into this one."""
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def copy(self) -> RunCounters:
        return RunCounters(**asdict(self))


@dataclass
class SimulationContext:
    """Explicit simulation state shared by the engine and its collaborators.

    Example:
        >>> ctx = SimulationContext.create(seed=42, clock=SystemClock())
        >>> device_id = ctx.rng.randrange(1000)
    """

    rng: random.Random
    clock: Clock
    counters: RunCounters = field(default_factory=RunCounters)

    @classmethod
    def create(cls, seed: int | None = None, clock: Clock | None = None) -> SimulationContext:
        return cls(rng=random.Random(seed), clock=clock or SystemClock())

    def now_ms(self) -> int:
        return self.clock.now_ms()


def ms_to_datetime(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to a naive UTC datetime for TIMESTAMP columns."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).replace(tzinfo=None)
