"""Pytest configuration: shared clock, store and service fixtures."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from retention_scheduler.service import SchedulerService
from retention_scheduler.store import SQLiteItemStore


BASE_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock so due/interval assertions are exact."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path: Path) -> SQLiteItemStore:
    return SQLiteItemStore(db_path=str(tmp_path / "items.sqlite3"))


@pytest.fixture()
def service(store: SQLiteItemStore, clock: FakeClock) -> SchedulerService:
    return SchedulerService(store, clock=clock)
