"""Integration tests for EventEngine: provisioning, iterations, interval tasks."""

from datetime import datetime

import pytest

from simbox_simulator.config.schemas import GeneratorSettings, RunArguments
from simbox_simulator.core.context import RunCounters, SimulationContext
from simbox_simulator.core.engine import EnginePhase, EventEngine
from simbox_simulator.core.router import RouteOutcome
from simbox_simulator.errors import DetectionQueryFailure
from simbox_simulator.persistence.queries import get_stat_history
from simbox_simulator.persistence.store import DETECTION_TOGGLE


def make_args(user_count=1000, cell_count=10, tpms=5, duration_seconds=0):
    return RunArguments(
        hostnames=":memory:",
        user_count=user_count,
        tpms=tpms,
        duration_seconds=duration_seconds,
        cell_count=cell_count,
    )


def cohort_settings(**overrides):
    """Every early device joins a 50-SIM box; 40 sharers are suspicious."""
    data = {
        "simbox": {"capacity": 50, "enrollment_probability": 1.0},
        "detection": {"suspicious_size": 40},
    }
    data.update(overrides)
    return GeneratorSettings.from_dict(data)


def row_count(store, table):
    return store.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class RecordingOutput:
    def __init__(self):
        self.phases = []
        self.reports = []
        self.summary = None

    def on_phase_change(self, phase, message):
        self.phases.append(phase)

    def on_interval_complete(self, report, detection):
        self.reports.append((report, detection))

    def on_run_complete(self, summary):
        self.summary = summary


class TestProvisioning:
    def test_devices_cells_and_cohort(self, store, ctx):
        engine = EventEngine(store, make_args(), cohort_settings(), ctx)

        engine.provision()

        assert len(engine.devices) == 1000
        assert engine.simbox.member_ids == list(range(50))
        assert all(device.signature is not None for device in engine.devices)
        assert {device.signature for device in engine.simbox} == {"6,5,4,3,2,1"}
        assert {device.current_cell_id for device in engine.simbox} == {6}
        assert row_count(store, "cells") == 10
        assert row_count(store, "devices") == 1000
        assert row_count(store, "cell_change_events") == 1000 * 6
        assert ctx.counters == RunCounters()

    def test_cohort_never_exceeds_capacity(self, store, ctx):
        settings = GeneratorSettings.from_dict(
            {"simbox": {"capacity": 5, "enrollment_probability": 0.5}}
        )
        engine = EventEngine(store, make_args(user_count=200), settings, ctx)

        engine.provision()

        assert len(engine.simbox) == 5

    def test_prior_cohorts_are_cleared(self, store, ctx):
        store.conn.execute(
            "INSERT INTO suspicious_cohorts VALUES ('old', ?, 0, 1)", [datetime(2024, 1, 1)]
        )

        EventEngine(store, make_args(user_count=10), GeneratorSettings(), ctx).provision()

        assert row_count(store, "suspicious_cohorts") == 0

    def test_step_before_provision_fails(self, store, ctx):
        engine = EventEngine(store, make_args(user_count=10), GeneratorSettings(), ctx)

        with pytest.raises(RuntimeError):
            engine.step()


class TestIterations:
    def test_every_iteration_is_counted_once(self, store, ctx):
        engine = EventEngine(store, make_args(user_count=100), cohort_settings(), ctx)
        engine.provision()

        results = [engine.step() for _ in range(300)]

        counters = ctx.counters
        assert (
            counters.busy_misses
            + counters.fraud_calls
            + counters.ordinary_calls
            + counters.ordinary_moves
        ) == 300
        assert counters.fraud_calls == sum(r.outcome is RouteOutcome.FRAUD_CALL for r in results)

    def test_population_of_only_members_counts_busy_misses(self, store, ctx):
        engine = EventEngine(store, make_args(user_count=50), cohort_settings(), ctx)
        engine.provision()
        assert len(engine.simbox) == 50

        results = [engine.step() for _ in range(10)]

        assert all(result.outcome is RouteOutcome.BUSY for result in results)
        assert ctx.counters.busy_misses == 10

    def test_relocation_moves_cohort_to_next_cell(self, store, ctx, manual_clock):
        settings = cohort_settings(simbox_relocation_minutes=1)
        engine = EventEngine(store, make_args(), settings, ctx)
        engine.provision()

        manual_clock.advance(60_000)
        engine.step()

        assert engine.simbox.cell_id == 7
        assert ctx.counters.fraud_moves == 50
        assert {device.current_cell_id for device in engine.simbox} == {7}


class TestIntervalTasks:
    def test_dominant_cohort_is_recorded(self, store, ctx):
        store.set_toggle(DETECTION_TOGGLE, 1)
        engine = EventEngine(store, make_args(), cohort_settings(), ctx)
        engine.provision()
        interval_start = ctx.now_ms()
        for _ in range(200):
            engine.step()

        engine.run_interval_tasks(interval_start)

        cohorts = store.conn.execute(
            "SELECT signature, cell_id, member_count FROM suspicious_cohorts"
        ).fetchall()
        assert len(cohorts) == 1
        signature, cell_id, members = cohorts[0]
        assert signature == "6,5,4,3,2,1"
        assert cell_id == 6
        assert members >= 50
        assert engine.detections == 1
        assert ctx.counters == RunCounters()

    def test_detection_disabled_by_default(self, store, ctx):
        output = RecordingOutput()
        engine = EventEngine(store, make_args(), cohort_settings(), ctx, output=output)
        engine.provision()

        report = engine.run_interval_tasks(ctx.now_ms())

        assert not report.detection_enabled
        assert output.reports == [(report, None)]
        assert row_count(store, "suspicious_cohorts") == 0

    def test_failed_detection_does_not_stop_the_run(self, store, ctx, monkeypatch):
        store.set_toggle(DETECTION_TOGGLE, 1)
        engine = EventEngine(store, make_args(user_count=100), cohort_settings(), ctx)
        engine.provision()

        def broken(now_ms):
            raise DetectionQueryFailure("view unavailable")

        monkeypatch.setattr(engine.detector, "run", broken)

        report = engine.run_interval_tasks(ctx.now_ms())

        assert engine.detection_failures == 1
        assert report.metrics["sessions"] == 100

    def test_partial_interval_is_published_at_shutdown(self, store, stepping_clock):
        ctx = SimulationContext.create(seed=7, clock=stepping_clock)
        output = RecordingOutput()
        engine = EventEngine(
            store, make_args(user_count=100, duration_seconds=1), GeneratorSettings(), ctx, output
        )

        summary = engine.run()

        assert summary["intervals"] == 1
        assert len(output.reports) == 1
        calls = get_stat_history(store.conn, "ordinary_calls")["stat_value"].to_list()
        assert calls == [summary["ordinary_calls"]]
        assert store.writer.pending_count == 0


@pytest.mark.slow
class TestFullRun:
    def test_run_walks_every_phase(self, store, stepping_clock):
        store.set_toggle(DETECTION_TOGGLE, 1)
        settings = GeneratorSettings.from_dict(
            {
                "reporting_interval_seconds": 0.5,
                "simbox_relocation_minutes": 0.005,
                "resident_minutes_before_move": 0.005,
                "max_call_seconds": 1,
                "simbox": {"capacity": 20, "enrollment_probability": 1.0},
            }
        )
        ctx = SimulationContext.create(seed=42, clock=stepping_clock)
        output = RecordingOutput()
        engine = EventEngine(
            store, make_args(user_count=200, tpms=2, duration_seconds=2), settings, ctx, output
        )

        summary = engine.run()

        assert output.phases == [
            EnginePhase.INIT,
            EnginePhase.RUNNING,
            EnginePhase.DRAINING,
            EnginePhase.DONE,
        ]
        assert output.summary == summary
        assert summary["intervals"] >= 3
        assert summary["fraud_moves"] > 0
        assert summary["detection_failures"] == 0
        assert summary["failed_writes"] == 0
        assert row_count(store, "call_events") == summary["ordinary_calls"] + summary["fraud_calls"]
        assert store.writer.pending_count == 0
