"""Pytest configuration and fixtures for echohub.

HTTP tests run against a fresh create_app() with its lifespan entered, so
app.state.ws_registry exists. WebSocket end-to-end tests use Starlette's
TestClient (which runs the lifespan itself).
"""

from collections.abc import AsyncIterator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from echohub.core.config import get_settings
from echohub.main import create_app


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Clear the settings cache around each test so monkeypatched env applies."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def app() -> FastAPI:
    """A new application instance per test (isolated registry)."""
    return create_app()


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Async HTTP client against the FastAPI app (ASGI) with lifespan started."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def ws_client(app: FastAPI) -> Iterator[TestClient]:
    """Sync TestClient for WebSocket sessions; entering it runs startup/shutdown."""
    with TestClient(app) as tc:
        yield tc
