"""Shared test fixtures for pytest.

ENVIRONMENT is forced to ``test`` before anything imports settings so no
``.env`` file is read, and the cached settings are rebuilt around every test
so ``monkeypatch.setenv`` takes effect.
"""

import os
from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
import pytest_asyncio


os.environ["ENVIRONMENT"] = "test"

from portfolio_chat.core.config import get_settings
from portfolio_chat.dev.replay_server import ReplayBackend, create_app
from portfolio_chat.services.chat_client import ChatApiClient


@pytest.fixture(autouse=True)
def fresh_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def replay_backend() -> ReplayBackend:
    return ReplayBackend()


@pytest_asyncio.fixture
async def api_client(
    replay_backend: ReplayBackend,
) -> AsyncGenerator[ChatApiClient, None]:
    """Client wired to the in-process replay backend."""
    transport = httpx.ASGITransport(app=create_app(replay_backend))
    async with ChatApiClient("http://testserver", transport=transport) as client:
        yield client


@pytest_asyncio.fixture
async def make_client() -> AsyncGenerator:
    """Build clients whose requests are answered by ``handler(request)``."""
    clients: list[ChatApiClient] = []

    def factory(handler) -> ChatApiClient:
        client = ChatApiClient(
            "http://testserver", transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()
