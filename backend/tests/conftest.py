"""
Test configuration and fixtures.

The API runs in-process on an in-memory SQLite database; the face-analysis
and avatar services are replaced by an httpx.MockTransport.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from registration.main import app
from registration.database import create_tables, drop_tables
from registration.client.context import AppContext, ClientSettings

from factories import FakeServices

API_URL = "http://test"
FACE_API_URL = "http://faces.test"
AVATAR_API_URL = "http://avatars.test/7.x"


@pytest.fixture
def db():
    drop_tables()
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def api_requests():
    return []


@pytest.fixture
async def client(db, api_requests):
    async def record(request):
        api_requests.append((request.method, request.url.path))

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=API_URL,
                           event_hooks={"request": [record]}) as ac:
        yield ac


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
async def service_client(services):
    async with AsyncClient(transport=httpx.MockTransport(services.handler)) as ac:
        yield ac


@pytest.fixture
def settings():
    return ClientSettings(
        api_url=API_URL,
        face_api_url=FACE_API_URL,
        avatar_api_url=AVATAR_API_URL,
        model_load_polls=50,
        model_load_interval=0.001,
        success_display_seconds=0,
    )


@pytest.fixture
async def context(settings, service_client, client):
    ctx = AppContext.build(settings, http_client=service_client, api_client=client)
    yield ctx
    await ctx.aclose()
