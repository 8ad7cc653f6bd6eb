"""
Throughput governor.

Bounds the offered load to ``target_per_ms`` cost units per millisecond,
independent of host speed. Events are not paced individually: cost is
accumulated and the generator only spins once the current millisecond's
budget is exceeded.
"""

from __future__ import annotations

from .context import Clock

# Sleep granularity while waiting for the next millisecond
SPIN_SLEEP_SECONDS = 0.00005


class ThroughputGovernor:
    """Cost accounting per wall-clock millisecond.

    Each elapsed millisecond credits ``target_per_ms`` units against the
    accumulated cost. An overshoot therefore carries into the following
    millisecond(s), so the cost emitted up to the end of any millisecond never
    exceeds the budget by more than the last recorded cost.

    Example:
        >>> governor = ThroughputGovernor(target_per_ms=10, clock=SystemClock())
        >>> governor.record(2)   # a call
        False
        >>> governor.record(50)  # a 50-member relocation: spins ~4ms
        True
    """

    def __init__(self, target_per_ms: int, clock: Clock):
        if target_per_ms <= 0:
            raise ValueError("target_per_ms must be positive")
        self.target_per_ms = target_per_ms
        self.clock = clock
        self.spent = 0
        self.throttle_count = 0
        self.total_cost = 0
        self._window_ms: int | None = None

    def _settle(self, now: int) -> None:
        if self._window_ms is None:
            self._window_ms = now
            return
        elapsed = now - self._window_ms
        if elapsed > 0:
            self.spent = max(0, self.spent - elapsed * self.target_per_ms)
            self._window_ms = now

    def _wait_for_next_ms(self) -> None:
        while self.clock.now_ms() == self._window_ms:
            self.clock.sleep(SPIN_SLEEP_SECONDS)

    def record(self, cost: int) -> bool:
        """Account for ``cost`` units of emitted load.

        Returns:
            True if the call had to wait for later milliseconds
        """
        if cost <= 0:
            return False

        self._settle(self.clock.now_ms())
        self.spent += cost
        self.total_cost += cost

        throttled = False
        while self.spent > self.target_per_ms:
            self._wait_for_next_ms()
            self._settle(self.clock.now_ms())
            throttled = True

        if throttled:
            self.throttle_count += 1
        return throttled
