"""
Pytest configuration and shared fixtures.

Provides:
- db_path: file-backed database path kept on failure for inspection
- store: in-memory DuckDBStore with the schema applied
- manual_clock / ctx: a clock that only moves when told to, and a seeded
  SimulationContext driven by it
"""

import os
from pathlib import Path
from typing import Generator

import pytest

from simbox_simulator.core.context import SimulationContext
from simbox_simulator.persistence.connection import DatabaseManager
from simbox_simulator.persistence.store import DuckDBStore

# 2023-11-14T22:13:20Z
START_MS = 1_700_000_000_000


class ManualClock:
    """Clock that advances only through ``sleep`` and ``advance``.

    Time is kept in microseconds so that sub-millisecond sleeps add up
    exactly.
    """

    def __init__(self, start_ms: int = START_MS):
        self._us = start_ms * 1000

    def now_ms(self) -> int:
        return self._us // 1000

    def sleep(self, seconds: float) -> None:
        self._us += max(1, round(seconds * 1_000_000))

    def advance(self, ms: float) -> None:
        self._us += round(ms * 1000)


class SteppingClock(ManualClock):
    """Manual clock that also moves forward a little on every read.

    Lets a full engine run finish even when no iteration sleeps.
    """

    def __init__(self, start_ms: int = START_MS, step_us: int = 100):
        super().__init__(start_ms)
        self.step_us = step_us

    def now_ms(self) -> int:
        self._us += self.step_us
        return self._us // 1000


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def stepping_clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def ctx(manual_clock) -> SimulationContext:
    """Seeded context on a manual clock."""
    return SimulationContext.create(seed=1234, clock=manual_clock)


@pytest.fixture
def store() -> Generator[DuckDBStore, None, None]:
    """In-memory store with the full schema."""
    manager = DatabaseManager(":memory:")
    manager.setup()
    store = DuckDBStore(manager, batch_size=1000)
    yield store
    store.close()


@pytest.fixture
def db_path(request, tmp_path) -> Generator[Path, None, None]:
    """Provide database path with intelligent cleanup.

    Behavior:
    - Local dev (default): Uses api/test_databases/ for easy inspection
    - CI environment: Uses tmp_path for isolation
    - Keeps database on test failure for debugging
    - Cleans up on test success

    To inspect after a failed test:
        $ duckdb api/test_databases/test_something.db
        D SELECT * FROM suspicious_cohorts;
    """
    is_ci = os.getenv("CI") == "true" or os.getenv("GITHUB_ACTIONS") == "true"

    if is_ci:
        db_file = tmp_path / "test.db"
    else:
        test_db_dir = Path(__file__).parent.parent / "test_databases"
        test_db_dir.mkdir(exist_ok=True)

        test_name = request.node.name.replace("[", "_").replace("]", "")
        db_file = test_db_dir / f"{test_name}.db"

        _remove_database(db_file)

    yield db_file

    # On test failure: keep the database for debugging
    if not is_ci and request.node.rep_call.passed:
        _remove_database(db_file)


def _remove_database(db_file: Path) -> None:
    for path in (db_file, Path(str(db_file) + ".wal")):
        if path.exists():
            path.unlink()


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Make test results available to fixtures (see db_path)."""
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)
