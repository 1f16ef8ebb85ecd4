from typing import Dict, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from routers import rate_limit
from services.errors import UpstreamError
from services.inference import get_inference_client, get_zero_shot_client


class FakeInference:
    """Scripted stand-in for InferenceClient, answering per task name."""

    def __init__(self, responses: Optional[Dict[str, object]] = None, available: bool = True):
        self.responses = dict(responses or {})
        self.available = available
        self.calls = []

    @property
    def tasks(self):
        return [call["task"] for call in self.calls]

    async def complete(self, prompt, *, task, **kwargs):
        self.calls.append({"task": task, "prompt": prompt, **kwargs})
        value = self.responses.get(task)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise UpstreamError(f"no scripted answer for {task}")
        return value


class FakeZeroShot:
    def __init__(self, scores: Optional[Dict[str, float]] = None, error: Optional[Exception] = None):
        self.scores = dict(scores or {})
        self.error = error
        self.calls = []

    async def classify(self, text, labels):
        self.calls.append({"text": text, "labels": list(labels)})
        if self.error is not None:
            raise self.error
        return dict(self.scores)


COMPLIANT_ANSWER = '{"haram": false, "categories": [], "explanation": "", "problematic_phrases": []}'
NO_VISUALIZATION_ANSWER = '{"should_visualize": false, "visualization_type": "", "title": ""}'


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "halalchat.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with patch("services.generation.async_session_maker", session_maker):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_inference_client, None)
    app.dependency_overrides.pop(get_zero_shot_client, None)


def use_inference(inference, zero_shot=None):
    """Route the app's inference dependencies to scripted fakes."""
    zero_shot = zero_shot or FakeZeroShot(error=UpstreamError("zero-shot not scripted"))
    app.dependency_overrides[get_inference_client] = lambda: inference
    app.dependency_overrides[get_zero_shot_client] = lambda: zero_shot
    return inference, zero_shot
