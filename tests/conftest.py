"""
Shared test fixtures.

Every app instance gets its own in-memory SQLite database and its own
second-level cache, so counters start at zero in each test.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from omis.app import create_app
from omis.config import Settings
from omis.core.cache.second_level import SecondLevelCache


def get_test_settings(**cache: object) -> Settings:
    return Settings(
        env="test",
        database={"url": "sqlite+aiosqlite:///:memory:", "create_schema": False},  # type: ignore[arg-type]
        logging={"level": "DEBUG", "format": "console"},  # type: ignore[arg-type]
        cache=cache,  # type: ignore[arg-type]
    )


@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


# App + Client Fixtures

@pytest.fixture
async def app(settings: Settings) -> AsyncIterator[FastAPI]:
    application = create_app(settings)
    await application.state.database.create_schema()
    yield application
    await application.state.database.dispose()


@pytest.fixture
def cache(app: FastAPI) -> SecondLevelCache:
    return app.state.cache


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def sensor(client: AsyncClient) -> dict:
    resp = await client.post(
        "/api/sensors/",
        json={"name": "mic-lobby", "type": "microphone", "location": "Lobby"},
    )
    assert resp.status_code == 201
    return resp.json()
