"""Shared fixtures for the property ingest tests."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from property_ingest.config import Settings
from property_ingest.db import create_engine, create_session_factory, init_db


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Isolated test settings: file-backed SQLite, no sample dataset, no timers."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        apify_api_token="test-token",
        apify_poll_interval=0,
        apify_max_poll_attempts=3,
        scraper_api_key="test-key",
        local_dataset_paths=[str(tmp_path / "no-such-dataset.json")],
        reconciliation_enabled=False,
        reconciliation_request_delay=0,
    )


@pytest.fixture
def database(settings):
    """
    Async context manager yielding a session factory on a fresh schema.

    Used inside a test's own ``asyncio.run`` so the engine lives on one
    event loop.
    """

    @asynccontextmanager
    async def _open(create_tables: bool = True):
        engine = create_engine(settings)
        if create_tables:
            await init_db(engine)
        try:
            yield create_session_factory(engine)
        finally:
            await engine.dispose()

    return _open


class SteppingClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()
