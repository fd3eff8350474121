"""
CoffeeTime AI Backend: Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Provider HTTP traffic goes through `httpx.MockTransport` stubs that
       record every outbound request; the settings store runs on an
       in-memory aiosqlite database.

Fixture Hierarchy (all function-scoped):
    ├── provider_stub:     factory for RecordingTransport stubs
    ├── db_engine:         in-memory SQLite engine with the schema created
    ├── db_session:        AsyncSession bound to db_engine
    ├── make_task_service: AITaskService wired to a stub transport
    └── test_client:       HTTPX AsyncClient against the FastAPI app, with
                           the DB session overridden
"""

import os

# Must be set before any coffeetime import reads Settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["GEMINI_API_KEY"] = "server-fallback-key"
os.environ["LOG_LEVEL"] = "WARNING"

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coffeetime.database import Base
from coffeetime.models.ai_settings import AISettingsRecord  # noqa: F401
from coffeetime.services.ai_settings_service import AISettingsService
from coffeetime.services.ai_task_service import AITaskService
from coffeetime.services.config_resolver import ConfigurationResolver
from coffeetime.services.image_generation import build_image_dispatcher
from coffeetime.services.llm_dispatcher import build_llm_dispatcher
from coffeetime.services.model_catalog import model_catalog

# Tiny but well-formed image headers, base64-encoded
JPEG_B64 = "/9j/4AAQSkZJRgABAQAAAQABAAD/2w=="
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAAB"


# ══════════════════════════════════════════════════════════════════════════
# Provider Stubs
# ══════════════════════════════════════════════════════════════════════════


class RecordingTransport:
    """
    MockTransport handler that records requests and replies via `responder`.

    Usage:
        stub = RecordingTransport.json_reply({"candidates": [...]})
        adapter = GeminiAdapter(transport=stub.transport)
        ...
        assert stub.json_body()["contents"][0]["role"] == "user"
    """

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @classmethod
    def json_reply(cls, payload: Any, status_code: int = 200) -> "RecordingTransport":
        return cls(lambda request: httpx.Response(status_code, json=payload))

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def json_body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture
def provider_stub():
    """Factory: provider_stub(payload, status_code=200) → RecordingTransport."""

    def factory(payload: Any = None, status_code: int = 200) -> RecordingTransport:
        return RecordingTransport.json_reply(payload if payload is not None else {}, status_code)

    return factory


def gemini_reply(text: str, usage: bool = True) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]
    }
    if usage:
        payload["usageMetadata"] = {"promptTokenCount": 120, "candidatesTokenCount": 45}
    return payload


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def db_engine():
    # StaticPool: every session shares the single in-memory connection
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def make_task_service():
    """
    Factory for an AITaskService whose every outbound call hits `stub`.

    Usage:
        stub = provider_stub(gemini_reply('{"confidence": 0.9}'))
        service = make_task_service(stub)
    """

    def factory(
        stub: RecordingTransport,
        fallback_key: Optional[str] = "server-fallback-key",
    ) -> AITaskService:
        return AITaskService(
            dispatcher=build_llm_dispatcher(model_catalog, timeout=5.0, transport=stub.transport),
            image_dispatcher=build_image_dispatcher(timeout=5.0, transport=stub.transport),
            resolver=ConfigurationResolver(fallback_key, model_catalog),
            settings_service=AISettingsService(model_catalog),
            low_confidence_threshold=0.3,
        )

    return factory


@pytest_asyncio.fixture
async def test_client(db_engine):
    """
    HTTPX AsyncClient against the app, with a real in-memory settings store.

    Tests that exercise provider traffic install a stub-backed task service
    via `app.dependency_overrides[get_ai_task_service]`.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from coffeetime.database import get_db_session
    from coffeetime.main import app

    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_db_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
