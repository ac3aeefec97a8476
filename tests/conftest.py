"""Shared test fixtures for pytest.

Backend traffic never leaves the process: every ``OllamaClient`` used in tests
is built on ``httpx.MockTransport`` with a per-test handler.
"""

import asyncio
import json
from collections.abc import AsyncGenerator, Callable
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import get_ollama_client
from app.main import app
from app.services.ollama_client import OllamaClient

BASE_URL = "http://ollama.test:11434"
MODEL = "test-model"


def ndjson(*payloads) -> bytes:
    """Encode dicts as newline-delimited JSON, the backend's stream format."""
    return b"".join(json.dumps(p).encode("utf-8") + b"\n" for p in payloads)


async def byte_chunks(chunks: List[bytes], hang: bool = False):
    """Async body that yields ``chunks`` one read at a time, optionally never ending."""
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk
    if hang:
        await asyncio.Event().wait()


class FakeByteStream:
    """Minimal stand-in for a streaming ``httpx.Response``."""

    def __init__(self, chunks: List[bytes], hang: bool = False):
        self.chunks = chunks
        self.hang = hang
        self.closed = False

    def aiter_bytes(self):
        return byte_chunks(self.chunks, hang=self.hang)

    async def aclose(self) -> None:
        self.closed = True


class RecordingHandler:
    """MockTransport handler that records request bodies."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return self.respond(request)

    @property
    def last(self) -> Optional[dict]:
        return self.requests[-1] if self.requests else None


def refuse_connection(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def make_client():
    """Factory: OllamaClient whose backend is ``handler``."""

    def _make(handler) -> OllamaClient:
        return OllamaClient(BASE_URL, MODEL, transport=httpx.MockTransport(handler))

    return _make


@pytest_asyncio.fixture
async def api_client() -> AsyncGenerator[Callable[[OllamaClient], AsyncClient], None]:
    """Factory: HTTP client for the app with the backend dependency overridden."""
    opened: List[AsyncClient] = []

    def _open(backend: OllamaClient) -> AsyncClient:
        app.dependency_overrides[get_ollama_client] = lambda: backend
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        opened.append(client)
        return client

    yield _open

    for client in opened:
        await client.aclose()
    app.dependency_overrides.clear()
