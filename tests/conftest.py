"""Shared fixtures: a fresh relay app per test."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import create_app
from app.services.relay_broker import RelayBroker


@pytest.fixture
def broker() -> RelayBroker:
    return RelayBroker(50, send_timeout=0.5)


@pytest.fixture
def relay_app(broker: RelayBroker):
    return create_app(broker)


@pytest_asyncio.fixture
async def client(relay_app) -> AsyncClient:
    async with AsyncClient(transport=ASGITransport(app=relay_app), base_url="http://test") as ac:
        yield ac
