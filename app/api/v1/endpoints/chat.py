import json
import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from app.api.dependencies import get_ollama_client
from app.core.config import settings
from app.schemas.chat import ChatRequest, ChatResponse
from app.schemas.mindmap import ErrorResponse
from app.services.chat_service import build_conversation, open_chat_stream
from app.services.ollama_client import OllamaClient
from app.services.stream_relay import StreamRelay

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


# ── Helper: SSE Event Stream ─────────────────────────────────────────────────

def _frame(payload) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _sse_wrapper(relay: StreamRelay):
    """Wraps a relay into SSE ``{"response": ...}`` frames."""
    try:
        async for fragment in relay:
            yield _frame({"response": fragment})
        yield "data: [DONE]\n\n"
    except httpx.HTTPError as e:
        logger.error(f"[CHAT] Stream failed mid-reply: {e!r}")
        yield _frame({"error": f"Streaming failed: {e}"})
        yield "data: [DONE]\n\n"
    finally:
        await relay.aclose()


def _backend_unavailable(e: Exception) -> JSONResponse:
    body = ErrorResponse(error=f"Chat backend unavailable: {e}")
    return JSONResponse(status_code=502, content=body.model_dump())


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CHAT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/chat")
async def chat(
    request: ChatRequest,
    client: OllamaClient = Depends(get_ollama_client),
):
    """Stream a reply to the conversation via Server-Sent Events."""
    conversation = request.conversation
    if request.mindmap is not None:
        conversation = build_conversation(request.mindmap, conversation)

    logger.info(f"[CHAT] {len(conversation)} turns, stream={request.stream}")
    try:
        relay = await open_chat_stream(client, conversation)
    except httpx.HTTPError as e:
        logger.error(f"[CHAT] Could not open backend stream: {e!r}")
        return _backend_unavailable(e)

    if not (request.stream and settings.CHAT_STREAMING):
        try:
            text = await relay.collect()
        except httpx.HTTPError as e:
            logger.error(f"[CHAT] Backend stream failed: {e!r}")
            return _backend_unavailable(e)
        finally:
            await relay.aclose()
        return ChatResponse(response=text)

    return StreamingResponse(
        _sse_wrapper(relay),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
