"""Tests for RunCounters, SimulationContext and time helpers."""

from datetime import datetime

from simbox_simulator.core.context import RunCounters, SimulationContext, ms_to_datetime


class TestRunCounters:
    def test_reset_zeroes_every_counter(self):
        counters = RunCounters(busy_misses=3, fraud_calls=2, profit=1.25, failed_writes=4)

        counters.reset()

        assert counters == RunCounters()
        assert isinstance(counters.profit, float)

    def test_add_accumulates(self):
        totals = RunCounters(ordinary_calls=5)
        totals.add(RunCounters(ordinary_calls=2, fraud_moves=50, profit=0.5))

        assert totals.ordinary_calls == 7
        assert totals.fraud_moves == 50
        assert totals.profit == 0.5

    def test_copy_is_independent(self):
        counters = RunCounters(busy_misses=1)
        snapshot = counters.copy()

        counters.busy_misses += 1

        assert snapshot.busy_misses == 1
        assert counters.snapshot()["busy_misses"] == 2


class TestSimulationContext:
    def test_same_seed_same_draws(self, manual_clock):
        a = SimulationContext.create(seed=99, clock=manual_clock)
        b = SimulationContext.create(seed=99, clock=manual_clock)

        assert [a.rng.randrange(1000) for _ in range(10)] == [
            b.rng.randrange(1000) for _ in range(10)
        ]

    def test_now_reads_the_context_clock(self, manual_clock):
        ctx = SimulationContext.create(seed=1, clock=manual_clock)
        before = ctx.now_ms()

        manual_clock.advance(250)

        assert ctx.now_ms() == before + 250

    def test_ms_to_datetime_is_naive_utc(self):
        assert ms_to_datetime(1_700_000_000_000) == datetime(2023, 11, 14, 22, 13, 20)
