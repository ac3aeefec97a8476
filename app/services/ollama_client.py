"""
Ollama backend client.

Thin wrapper around ``httpx.AsyncClient`` for ``POST /api/generate``.
Non-streaming calls return the raw body text whatever the HTTP status;
streaming calls return the open ``httpx.Response`` as soon as headers arrive.
Transport errors (``httpx.HTTPError``) propagate untouched. No retries.
"""

import logging
from typing import Optional, Union

import httpx

from app.core.config import settings
from app.schemas.chat import GenerationRequest

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"


class OllamaClient:
    """Issues generation requests against a single configured backend."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, **kwargs) -> "OllamaClient":
        return cls(
            base_url=settings.OLLAMA_BASE_URL,
            model=settings.OLLAMA_MODEL,
            timeout=settings.OLLAMA_TIMEOUT_SECONDS,
            **kwargs,
        )

    def build_request(self, prompt: str, stream: bool = False) -> GenerationRequest:
        return GenerationRequest(prompt=prompt, model=self.model, stream=stream)

    async def generate(self, request: GenerationRequest) -> Union[str, httpx.Response]:
        """Text body for ``stream=False``, an unread streaming response otherwise."""
        if request.stream:
            return await self.open_stream(request)
        return await self.complete(request)

    async def complete(self, request: GenerationRequest) -> str:
        logger.info(f"[OLLAMA] POST {GENERATE_PATH} model={request.model} stream=False")
        response = await self._client.post(GENERATE_PATH, json=request.model_dump())
        if response.status_code >= 400:
            logger.warning(f"[OLLAMA] Backend answered HTTP {response.status_code}")
        return response.text

    async def open_stream(self, request: GenerationRequest) -> httpx.Response:
        """The caller owns the returned response and must ``aclose()`` it."""
        logger.info(f"[OLLAMA] POST {GENERATE_PATH} model={request.model} stream=True")
        http_request = self._client.build_request(
            "POST", GENERATE_PATH, json=request.model_dump()
        )
        response = await self._client.send(http_request, stream=True)
        if response.status_code >= 400:
            logger.warning(f"[OLLAMA] Backend stream answered HTTP {response.status_code}")
        return response

    async def aclose(self) -> None:
        await self._client.aclose()
