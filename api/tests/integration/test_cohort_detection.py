"""Integration tests for CohortDetector over the last_6_cells view."""

from datetime import datetime

import pytest

from simbox_simulator.config.schemas import DetectionSettings
from simbox_simulator.core.context import ms_to_datetime
from simbox_simulator.detection import CohortDetector, evaluate_signature_counts
from simbox_simulator.errors import DetectionQueryFailure
from simbox_simulator.persistence.store import DuckDBStore

T0 = datetime(2024, 1, 1, 12, 0, 0)
NOW_MS = 1_700_000_000_000


def seed_signatures(store, counts, cohort_cell=7):
    """Write devices so that signature i is carried by counts[i] devices.

    The first signature ("9,8,7,6,5,4") plays the cohort; its devices sit in
    ``cohort_cell``.
    """
    device_id = 0
    for rank, count in enumerate(counts):
        signature = "9,8,7,6,5,4" if rank == 0 else f"{rank},0,0,0,0,0"
        cell_id = cohort_cell if rank == 0 else rank % 10
        for _ in range(count):
            store.upsert(
                "devices",
                {
                    "device_id": device_id,
                    "current_cell_id": cell_id,
                    "created_at": T0,
                    "last_cell_change_at": T0,
                    "call_end_at": None,
                    "cell_history_last6": signature,
                },
            )
            device_id += 1
    store.drain()


def cohort_rows(store):
    return store.conn.execute(
        "SELECT signature, detected_at, cell_id, member_count FROM suspicious_cohorts"
    ).fetchall()


def member_count(store):
    return store.conn.execute("SELECT COUNT(*) FROM suspicious_cohort_members").fetchone()[0]


class TestSignatureRule:
    """The pure dominance rule."""

    def test_dominant_signature_fires(self):
        rows = [("a", 250)] + [(f"s{i}", 90) for i in range(19)]

        verdict = evaluate_signature_counts(rows, DetectionSettings())

        assert verdict.fired
        assert (verdict.best, verdict.kth) == (250, 90)

    def test_not_dominant_enough(self):
        rows = [("a", 150)] + [(f"s{i}", 80) for i in range(19)]

        verdict = evaluate_signature_counts(rows, DetectionSettings())

        assert not verdict.fired
        assert verdict.reason == "not_dominant"

    def test_view_size_is_a_hard_floor(self):
        rows = [("a", 10_000)] + [(f"s{i}", 1) for i in range(18)]

        verdict = evaluate_signature_counts(rows, DetectionSettings())

        assert not verdict.fired
        assert verdict.reason == "insufficient_signatures"

    def test_best_must_exceed_suspicious_size(self):
        rows = [("a", 100)] + [(f"s{i}", 1) for i in range(19)]

        verdict = evaluate_signature_counts(rows, DetectionSettings())

        assert verdict.reason == "below_floor"

    def test_twice_kth_is_not_enough(self):
        rows = [("a", 200)] + [(f"s{i}", 100) for i in range(19)]

        assert not evaluate_signature_counts(rows, DetectionSettings()).fired


class TestDetectionPass:
    def test_flags_cohort_and_members(self, store):
        seed_signatures(store, [250] + [90] * 19)

        result = CohortDetector(store, DetectionSettings()).run(NOW_MS)

        assert result.fired
        assert result.signature == "9,8,7,6,5,4"
        assert result.member_ids == list(range(250))
        assert result.cell_id == 7
        assert cohort_rows(store) == [("9,8,7,6,5,4", ms_to_datetime(NOW_MS), 7, 250)]
        assert member_count(store) == 250

    def test_no_fire_writes_nothing(self, store):
        seed_signatures(store, [150] + [80] * 19)

        result = CohortDetector(store, DetectionSettings()).run(NOW_MS)

        assert not result.fired
        assert cohort_rows(store) == []
        assert member_count(store) == 0

    def test_nineteen_signatures_never_fire(self, store):
        seed_signatures(store, [500] + [1] * 18)

        result = CohortDetector(store, DetectionSettings()).run(NOW_MS)

        assert result.reason == "insufficient_signatures"
        assert cohort_rows(store) == []

    def test_redetection_refreshes_without_duplicates(self, store):
        seed_signatures(store, [250] + [90] * 19)
        detector = CohortDetector(store, DetectionSettings())

        detector.run(NOW_MS)
        detector.run(NOW_MS + 60_000)

        rows = cohort_rows(store)
        assert len(rows) == 1
        assert rows[0][1] == ms_to_datetime(NOW_MS + 60_000)
        assert member_count(store) == 250
        latest = store.conn.execute(
            "SELECT DISTINCT detected_at FROM suspicious_cohort_members"
        ).fetchall()
        assert latest == [(ms_to_datetime(NOW_MS + 60_000),)]


class _FailOnMembers:
    """Transaction scope that fails when membership rows are written."""

    def __init__(self, tx):
        self.tx = tx

    def query_top_signatures(self, limit):
        return self.tx.query_top_signatures(limit)

    def query_members_of(self, signature):
        return self.tx.query_members_of(signature)

    def upsert_many(self, table, rows):
        if table == "suspicious_cohort_members":
            raise RuntimeError("disk full")
        return self.tx.upsert_many(table, rows)


class FailingMembershipStore(DuckDBStore):
    def execute_atomic(self, unit_of_work):
        return super().execute_atomic(lambda tx: unit_of_work(_FailOnMembers(tx)))


class TestDetectionFailure:
    def test_failed_pass_leaves_prior_cohort_untouched(self, store):
        seed_signatures(store, [250] + [90] * 19)
        CohortDetector(store, DetectionSettings()).run(NOW_MS)

        failing = FailingMembershipStore(store.manager)
        with pytest.raises(DetectionQueryFailure, match="disk full"):
            CohortDetector(failing, DetectionSettings()).run(NOW_MS + 60_000)

        rows = cohort_rows(store)
        assert rows == [("9,8,7,6,5,4", ms_to_datetime(NOW_MS), 7, 250)]
        assert member_count(store) == 250
