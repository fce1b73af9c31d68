"""Test fixtures — fake remote for the engine, in-memory editor API for the HTTP client."""

import pytest
import pytest_asyncio
from httpx import ASGITransport

from editorsync.services.remote import RemoteFileService
from fake_service import create_fake_service
from fakes import FakeRemote


@pytest_asyncio.fixture
async def remote():
    """Fake remote with one file, /a.txt = "hi" at fingerprint c1."""
    fake = FakeRemote()
    fake.put("/a.txt", "hi")
    return fake


@pytest.fixture
def fake_app():
    return create_fake_service()


@pytest_asyncio.fixture
async def service(fake_app):
    """Real RemoteFileService talking to the in-memory editor API."""
    client = RemoteFileService(
        base_url="http://test",
        api_prefix="/api/editor",
        timeout=5.0,
        transport=ASGITransport(app=fake_app),
    )
    yield client
    await client.aclose()
