from __future__ import annotations

import pytest
import pytest_asyncio

from tests.wsserver import SilentServer, UserServer, free_port


@pytest_asyncio.fixture
async def user_server():
    server = await UserServer().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def silent_server():
    server = await SilentServer().start()
    yield server
    await server.stop()


@pytest.fixture
def dead_url() -> str:
    """A ws:// URL on a port with nothing listening."""
    return f"ws://127.0.0.1:{free_port()}/ws/users"
