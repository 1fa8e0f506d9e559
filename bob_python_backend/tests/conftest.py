"""
Pytest configuration and shared fixtures for the Based-or-Biased backend tests.

This module provides:
- Upstream HTTP fakes (httpx.MockTransport recorders)
- A controllable clock for TTL and rate-limit tests
- Sample posts and based-score payloads
- A no-op sleep so retry loops run instantly
"""

import json
from typing import Callable, List

import httpx
import pytest

from bob_python_backend.schemas import BasedScore, PoliticalBelief, Post, TribalAffiliation
from bob_python_backend.services import retry


# ============================================================================
# Upstream HTTP fakes
# ============================================================================

class RecordingTransport:
    """
    Wraps a handler in an httpx.MockTransport and records every request.

    Usage:
        transport = RecordingTransport(lambda request: httpx.Response(200, json={...}))
        client = httpx.AsyncClient(transport=transport.mock)
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []
        self.mock = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.mock)


def chat_completion(content: str) -> dict:
    """Minimal OpenAI-compatible completion body."""
    return {
        "id": "cmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


@pytest.fixture
def recording_transport():
    return RecordingTransport


@pytest.fixture
def completion_body():
    return chat_completion


# ============================================================================
# Time control
# ============================================================================

class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def no_sleep(monkeypatch):
    """Replace the retry sleep with a recorder; returns the list of requested delays."""
    delays: List[float] = []

    async def _fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(retry, "_sleep", _fake_sleep)
    return delays


# ============================================================================
# Sample data
# ============================================================================

@pytest.fixture
def sample_posts():
    return [
        Post(id="1", text="Older post", created_at="2024-01-01T00:00:00.000Z"),
        Post(id="2", text="Newest post", created_at="2024-03-01T00:00:00.000Z"),
        Post(id="3", text="Middle post", created_at="2024-02-01T00:00:00.000Z"),
    ]


@pytest.fixture
def sample_based_score():
    return BasedScore(
        tribal_affiliation=TribalAffiliation.TECH_BRO,
        justification="Builds things",
        mainstream_beliefs=[
            PoliticalBelief(belief="The earth orbits the sun once a year", confidence=0.9, importance=0.5),
        ],
        contrarian_beliefs=[
            PoliticalBelief(belief="Remote work beats offices", confidence=0.7, importance=0.6),
        ],
        based_score=70,
        sincerity_score=80,
        truthfulness_score=65,
        conspiracy_score=10,
    )


@pytest.fixture
def based_score_reply():
    return json.dumps(
        {
            "tribal_affiliation": "tech bro",
            "justification": "Ships side projects every weekend",
            "contrarian_beliefs": [{"belief": "Meetings are mostly waste", "confidence": 0.8, "importance": 0.4}],
            "mainstream_beliefs": [{"belief": "Open source matters", "confidence": 0.9, "importance": 0.7}],
            "based_score": 72,
            "sincerity_score": 81,
            "truthfulness_score": 66,
            "conspiracy_score": 12,
        }
    )
