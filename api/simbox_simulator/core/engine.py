"""
Event engine: provisioning, the generator loop and interval tasks.

The engine runs on a single thread and owns every DeviceState and the SIM
box. Store writes are fire-and-forget through the store's write-behind
buffer; the engine only blocks on them at the end of provisioning, before a
detection pass and at shutdown.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, Protocol

from simbox_simulator.config.schemas import GeneratorSettings, RunArguments
from simbox_simulator.detection.cohort_detector import CohortDetector, DetectionResult
from simbox_simulator.errors import DetectionQueryFailure
from simbox_simulator.persistence.store import SimboxStore

from .context import ONE_DAY_MS, ONE_YEAR_MS, RunCounters, SimulationContext
from .device import CallEvent, CellChangeEvent, DeviceState
from .governor import ThroughputGovernor
from .router import CallRouter, RouteOutcome, RouteResult
from .simbox import SimBoxEntity
from .stats_reporter import IntervalReport, StatsReporter

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    """Lifecycle of a run: INIT -> RUNNING -> DRAINING -> DONE."""

    INIT = "init"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class OutputStrategy(Protocol):
    """Receives progress from the engine.

    The CLI provides a rich console implementation and a quiet one.
    """

    def on_phase_change(self, phase: EnginePhase, message: str) -> None:
        """Called on every phase transition.

        Args:
            phase: Phase being entered
            message: Human-readable status line
        """
        ...

    def on_interval_complete(
        self, report: IntervalReport, detection: DetectionResult | None
    ) -> None:
        """Called after each reporting interval.

        Args:
            report: Metrics published for the interval
            detection: Result of the detection pass, None if it did not run
        """
        ...

    def on_run_complete(self, summary: dict[str, Any]) -> None:
        ...


class _NoOutput:
    def on_phase_change(self, phase: EnginePhase, message: str) -> None:
        pass

    def on_interval_complete(
        self, report: IntervalReport, detection: DetectionResult | None
    ) -> None:
        pass

    def on_run_complete(self, summary: dict[str, Any]) -> None:
        pass


class EventEngine:
    """Drives a complete generator run.

    Usage:
        ctx = SimulationContext.create(seed=settings.rng_seed)
        engine = EventEngine(store, args, settings, ctx, output=ConsoleOutput())
        summary = engine.run()

    Individual stages (``provision``, ``step``, ``run_interval_tasks``) are
    public so that tests can drive the engine one iteration at a time.
    """

    def __init__(
        self,
        store: SimboxStore,
        args: RunArguments,
        settings: GeneratorSettings,
        ctx: SimulationContext,
        output: OutputStrategy | None = None,
    ):
        self.store = store
        self.args = args
        self.settings = settings
        self.ctx = ctx
        self.output = output or _NoOutput()

        self.phase = EnginePhase.INIT
        self.devices: list[DeviceState] = []
        self.simbox = SimBoxEntity(
            capacity=settings.simbox.capacity,
            cell_id=settings.simbox.initial_cell_id,
            fraud_route_probability=settings.simbox.fraud_route_probability,
            revenue_per_minute=settings.simbox.revenue_per_minute,
            created_at=ctx.now_ms(),
        )
        self.router: CallRouter | None = None
        self.governor = ThroughputGovernor(args.tpms, ctx.clock)
        self.detector = CohortDetector(store, settings.detection)
        self.reporter = StatsReporter(store, self.simbox)

        # Whole-run tallies; ctx.counters only ever holds the current interval
        self.totals = RunCounters()
        self.intervals = 0
        self.detections = 0
        self.detection_failures = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> dict[str, Any]:
        """Provision, generate traffic for the configured duration, drain.

        Returns:
            Run summary (see ``summary``)
        """
        self._enter(
            EnginePhase.INIT,
            f"Creating {self.args.user_count} devices over {self.args.cell_count} cells",
        )
        self.provision()

        self._enter(
            EnginePhase.RUNNING,
            f"Created {len(self.devices)} devices, {len(self.simbox)} are in a SIM box",
        )
        run_start = self.ctx.now_ms()
        run_end = run_start + self.args.duration_seconds * 1000
        interval_ms = self.settings.reporting_interval_seconds * 1000
        interval_start = run_start

        while self.ctx.now_ms() < run_end:
            self.step()
            if self.ctx.now_ms() - interval_start >= interval_ms:
                self.run_interval_tasks(interval_start)
                interval_start = self.ctx.now_ms()

        self._enter(EnginePhase.DRAINING, "Run finished; draining writes")
        self.store.drain()
        self._close_interval(interval_start)

        summary = self.summary(run_start)
        self._enter(EnginePhase.DONE, f"Done after {summary['intervals']} interval(s)")
        self.output.on_run_complete(summary)
        return summary

    def provision(self) -> None:
        """Create cells and devices, fill the SIM box and warm up histories.

        Prior cohort data is cleared first. Every device makes
        ``warmup_moves`` moves, so all histories are full when the run
        starts. SIM box members move together, one relocation per round.
        """
        ctx = self.ctx
        rng = ctx.rng
        cell_count = self.args.cell_count
        now = ctx.now_ms()

        self.store.reset_cohorts()

        for cell_id in range(cell_count):
            self.store.upsert("cells", {"cell_id": cell_id})

        for device_id in range(self.args.user_count):
            enroll = (
                not self.simbox.is_full
                and rng.random() < self.settings.simbox.enrollment_probability
            )
            if enroll:
                device = DeviceState(
                    device_id,
                    current_cell_id=self.simbox.cell_id,
                    created_at=now - rng.randrange(ONE_DAY_MS),
                )
                self.simbox.try_enroll(device)
            else:
                device = DeviceState(
                    device_id,
                    current_cell_id=device_id % cell_count,
                    created_at=now - rng.randrange(ONE_YEAR_MS),
                )
            self.devices.append(device)

        for _ in range(self.settings.warmup_moves):
            for device in self.devices:
                if not self.simbox.is_member(device.device_id):
                    move = device.change_cell(rng.randrange(cell_count), now, cell_count)
                    self.store.upsert(move.table, move.to_record())
            relocation = self.simbox.relocate(
                (self.simbox.cell_id + 1) % cell_count, now, cell_count
            )
            self._persist(relocation, [])

        for device in self.devices:
            self.store.upsert("devices", device.to_record())

        self.store.drain()
        self.router = CallRouter(self.devices, self.simbox, self.settings, cell_count)
        self.reporter.poll_toggles()
        self.store.pop_failed_writes()
        ctx.counters.reset()

    def step(self) -> RouteResult:
        """One generator iteration: route an attempt, maybe relocate, pace."""
        if self.router is None:
            raise RuntimeError("provision() must run before step()")

        ctx = self.ctx
        counters = ctx.counters
        result = self.router.route(ctx)

        if result.outcome is RouteOutcome.BUSY:
            counters.busy_misses += 1
            return result

        if result.outcome is RouteOutcome.FRAUD_CALL:
            counters.fraud_calls += 1
            counters.profit += sum(
                e.revenue for e in result.events if isinstance(e, CallEvent)
            )
        elif result.outcome is RouteOutcome.MOVE:
            counters.ordinary_moves += 1
        else:
            counters.ordinary_calls += 1

        self._persist(result.events, result.devices)
        cost = result.cost

        now = ctx.now_ms()
        if self.simbox.due_for_relocation(self.settings.simbox_relocation_minutes, now):
            relocation = self.simbox.relocate(
                (self.simbox.cell_id + 1) % self.args.cell_count, now, self.args.cell_count
            )
            counters.fraud_moves += len(relocation)
            self._persist(relocation, list(self.simbox))
            cost += sum(event.cost for event in relocation)

        self.governor.record(cost)
        return result

    def run_interval_tasks(self, interval_start_ms: int) -> IntervalReport:
        """Detection pass (when enabled), then stats for the closed interval."""
        now = self.ctx.now_ms()

        detection = None
        if self.reporter.detection_enabled:
            # The aggregate view must see this interval's moves
            self.store.drain()
            try:
                detection = self.detector.run(now)
            except DetectionQueryFailure as e:
                self.detection_failures += 1
                logger.warning("%s", e)
            else:
                if detection.fired:
                    self.detections += 1

        self.ctx.counters.failed_writes += self.store.pop_failed_writes()
        self.totals.add(self.ctx.counters)

        report = self.reporter.report(
            self.ctx.counters, interval_start_ms, now, sessions=len(self.devices)
        )
        self.intervals += 1
        self.output.on_interval_complete(report, detection)
        return report

    def summary(self, run_start_ms: int) -> dict[str, Any]:
        """Whole-run figures, suitable for JSON output."""
        return {
            "endpoint": getattr(self.store, "endpoint", None),
            "devices": len(self.devices),
            "cells": self.args.cell_count,
            "simbox_members": len(self.simbox),
            "elapsed_ms": self.ctx.now_ms() - run_start_ms,
            "intervals": self.intervals,
            "detections": self.detections,
            "detection_failures": self.detection_failures,
            "throttle_count": self.governor.throttle_count,
            "total_cost": self.governor.total_cost,
            "projected_profit": round(self.simbox.projected_profit(), 2),
            **self.totals.snapshot(),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, phase: EnginePhase, message: str) -> None:
        self.phase = phase
        logger.info("%s: %s", phase.value, message)
        self.output.on_phase_change(phase, message)

    def _persist(
        self,
        events: Iterable[CallEvent | CellChangeEvent],
        devices: Iterable[DeviceState],
    ) -> None:
        for event in events:
            self.store.upsert(event.table, event.to_record())
        for device in devices:
            self.store.upsert("devices", device.to_record())

    def _close_interval(self, interval_start_ms: int) -> None:
        """Publish the partial interval left at the end of the run, then flush it."""
        counters = self.ctx.counters
        counters.failed_writes += self.store.pop_failed_writes()
        if counters != RunCounters():
            self.totals.add(counters)
            report = self.reporter.report(
                counters, interval_start_ms, self.ctx.now_ms(), sessions=len(self.devices)
            )
            self.intervals += 1
            self.output.on_interval_complete(report, None)

        self.store.drain()
        # Stats rows dropped by the final flush have no interval left to land in
        self.totals.failed_writes += self.store.pop_failed_writes()
