"""
Shared fixtures: an in-memory spreadsheet, a hand-driven clock, and the full
service container wired over both.
"""
from __future__ import annotations

import pytest

from crmsheets.config import Settings
from crmsheets.container import ServiceContainer, build_services, reset_services
from fakes import AUTH, BIZ, FakeClock, FakeSheetsClient, seed_headers


@pytest.fixture
def settings() -> Settings:
    return Settings(spreadsheet_id=BIZ, auth_spreadsheet_id_override=AUTH, cache_duration=300)


@pytest.fixture
def fake(settings: Settings) -> FakeSheetsClient:
    client = FakeSheetsClient()
    seed_headers(client, settings)
    return client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def services(fake: FakeSheetsClient, settings: Settings, clock: FakeClock) -> ServiceContainer:
    return build_services(fake, settings, clock=clock)


@pytest.fixture(autouse=True)
def _fresh_container():
    reset_services()
    yield
    reset_services()
