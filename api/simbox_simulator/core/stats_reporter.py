"""
Per-interval statistics and toggle polling.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from simbox_simulator.persistence.store import DETECTION_TOGGLE, SELF_CALLS_TOGGLE, SimboxStore

from .context import RunCounters, ms_to_datetime
from .simbox import SimBoxEntity

SUSPECT_STATUS_PREFIX = "simboxstatus_"
NOT_SUSPECTED = "not_suspected"


@dataclass
class IntervalReport:
    """What was published for one reporting interval.

    Attributes:
        interval_end: Epoch ms the interval was closed at
        metrics: Published metric name -> value
        detection_enabled: Whether detection runs in the next interval
        self_calls: Whether SIM box members may call each other next interval
        simbox: Description of the SIM box at report time
    """

    interval_end: int
    metrics: dict[str, int] = field(default_factory=dict)
    detection_enabled: bool = False
    self_calls: bool = False
    simbox: str = ""


class StatsReporter:
    """Publishes interval counters and applies external toggles.

    Each value is written to ``simbox_stats`` under the interval's end time,
    so the table holds one value per metric per interval rather than a
    running total.

    Usage:
        reporter = StatsReporter(store, simbox)
        reporter.poll_toggles()
        ...
        report = reporter.report(ctx.counters, start_ms, ctx.now_ms(), sessions=1000)
    """

    def __init__(self, store: SimboxStore, simbox: SimBoxEntity):
        self.store = store
        self.simbox = simbox
        self.detection_enabled = False
        self.self_calls = False

    def poll_toggles(self) -> None:
        """Read both toggles and apply them."""
        self.detection_enabled = self.store.read_toggle(DETECTION_TOGGLE, 0) == 1
        self.self_calls = self.store.read_toggle(SELF_CALLS_TOGGLE, 0) == 1
        self.simbox.self_calls = self.self_calls

    def report(
        self,
        counters: RunCounters,
        interval_start_ms: int,
        interval_end_ms: int,
        sessions: int,
    ) -> IntervalReport:
        """Publish ``counters`` for the interval, then zero them.

        Args:
            counters: The interval's tallies (reset on return)
            interval_start_ms: When the interval began
            interval_end_ms: When the interval closed
            sessions: Number of provisioned devices

        Returns:
            IntervalReport with every published metric
        """
        elapsed_ms = max(1, interval_end_ms - interval_start_ms)
        metrics = {
            "tps": int(counters.ordinary_calls * 1000 / elapsed_ms),
            "sessions": sessions,
            "ordinary_calls": counters.ordinary_calls,
            "fraud_calls": counters.fraud_calls,
            "busy_misses": counters.busy_misses,
            "ordinary_moves": counters.ordinary_moves,
            "fraud_moves": counters.fraud_moves,
            "fraud_revenue_cents": int(counters.profit * 100),
            "failed_writes": counters.failed_writes,
        }
        counters.reset()

        self.poll_toggles()

        for reason, how_many in self.store.query_suspect_status(self.simbox.member_ids):
            metrics[SUSPECT_STATUS_PREFIX + (reason or NOT_SUSPECTED)] = how_many

        interval_end = ms_to_datetime(interval_end_ms)
        for name, value in metrics.items():
            self.store.upsert(
                "simbox_stats",
                {"stat_name": name, "interval_end": interval_end, "stat_value": value},
            )

        return IntervalReport(
            interval_end=interval_end_ms,
            metrics=metrics,
            detection_enabled=self.detection_enabled,
            self_calls=self.self_calls,
            simbox=str(self.simbox),
        )
