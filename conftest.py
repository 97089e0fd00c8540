"""
Shared fixtures for the test suite.

Every test gets its own data directory and a settings object pointing at it,
so nothing touches the real snapshot location.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from usage_counter.config import Settings
from usage_counter.services.persistence import JsonFileStore, PersistenceError

T0 = datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock used wherever the app asks for "now"."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FlakyStore(JsonFileStore):
    """JsonFileStore whose writes can be switched to fail."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.fail_writes = False
        self.saves = 0

    async def save(self, document):
        if self.fail_writes:
            raise PersistenceError("disk full")
        self.saves += 1
        await super().save(document)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path, instance_name="test", log_level="WARNING")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(settings) -> FlakyStore:
    return FlakyStore(settings.snapshot_path)
