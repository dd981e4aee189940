from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.settings import Settings
from app.main import create_app
from app.repositories.memory_repository import build_memory_repositories
from app.services.coordinator import build_coordinator
from app.services.fetchers import build_fixture_fetchers


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        USE_MOCK_DB=True,
        FETCHER_MODE="fixture",
        CACHE_SWEEP_ENABLED=False,
        SEED_RESOURCES_WHEN_EMPTY=True,
        DEFAULT_USER_ID="netrunnerX",
        DEFAULT_USER_ROLE="admin",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def coordinator(test_settings):
    return build_coordinator(
        test_settings,
        repositories=build_memory_repositories(),
        fetchers=build_fixture_fetchers(),
    )


@pytest.fixture
def client(coordinator):
    app = create_app(coordinator=coordinator)
    with TestClient(app) as test_client:
        yield test_client
