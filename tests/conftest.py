# tests/conftest.py
import os
import random
import sys
from typing import Dict, Optional

import httpx
import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Placeholder values so settings never reach for real credentials
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("CACHE_BACKEND", "memory")

from backend.cache import ResponseCache  # noqa: E402
from backend.simulator import JobSimulator  # noqa: E402
from backend.text_client import TextEnhancementClient  # noqa: E402
from backend.vision_client import VisionEnhancementClient  # noqa: E402

OPENAI_URL = "https://api.test/v1/chat/completions"
VISION_URL = "http://backend.test/vision"


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio used by the app."""

    def __init__(self):
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True


class CountingHandler:
    """httpx.MockTransport handler that records requests and replays a response."""

    def __init__(self, status_code=200, json=None, exc=None):
        self.status_code = status_code
        self.json = json
        self.exc = exc
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, json=self.json)

    @property
    def calls(self) -> int:
        return len(self.requests)


def openai_ok(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_text_client():
    def _make(handler, api_key="test-key", cache=None, seed=7):
        return TextEnhancementClient(
            api_url=OPENAI_URL,
            model="gpt-3.5-turbo",
            api_key=api_key,
            cache=cache if cache is not None else ResponseCache(),
            transport=httpx.MockTransport(handler),
            rng=random.Random(seed),
        )

    return _make


@pytest.fixture
def make_vision_client():
    def _make(handler, cache=None):
        return VisionEnhancementClient(
            endpoint=VISION_URL,
            cache=cache if cache is not None else ResponseCache(),
            transport=httpx.MockTransport(handler),
        )

    return _make


@pytest.fixture
def instant_simulator():
    return JobSimulator(min_seconds=0.0, max_seconds=0.0, failure_rate=0.0, rng=random.Random(1))
