"""
Fixtures for API tests.

The app is built with create_app() and run through its lifespan; Redis is
fakeredis, the model is ScriptedReasoningService and the plugin backend is
an httpx.MockTransport.
"""

import fakeredis
import fakeredis.aioredis
import httpx
import pytest
from fastapi.testclient import TestClient

from eduforge_agent.core.config import Settings
from eduforge_agent.main import create_app
from eduforge_agent.providers.fake import ScriptedReasoningService


@pytest.fixture
def reasoning() -> ScriptedReasoningService:
    return ScriptedReasoningService()


@pytest.fixture
def backend_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def app(reasoning, backend_requests):
    def backend(request: httpx.Request) -> httpx.Response:
        backend_requests.append(request)
        if request.url.path.endswith("/questions/generate"):
            return httpx.Response(200, json={"created": 3})
        if request.url.path.endswith("/questions"):
            return httpx.Response(200, json=[{"id": "q1", "content": "x^2-1=0"}])
        return httpx.Response(404, json={"error": "not found"})

    server = fakeredis.FakeServer()
    return create_app(
        Settings(reasoning_provider="fake"),
        redis_factory=lambda settings: fakeredis.aioredis.FakeRedis(
            server=server, decode_responses=True
        ),
        reasoning_service=reasoning,
        backend_transport=httpx.MockTransport(backend),
    )


@pytest.fixture
def client(app):
    """TestClient inside its context manager so the lifespan runs."""
    with TestClient(app) as test_client:
        yield test_client
