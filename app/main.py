"""
Mindmap Studio: LLM Relay API
=============================
FastAPI entry point.
  • Global exception handler: always returns JSON
  • Validation errors → 400 { "error": ... }
  • /api/v1/mindmap/generate, /api/v1/mindmap/edit: fail-soft markdown
  • /api/v1/chat: streamed replies over Server-Sent Events
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.endpoints import chat, mindmap
from app.core.config import settings
from app.schemas.mindmap import ErrorResponse
from app.services.ollama_client import OllamaClient

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ─────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ollama_client = OllamaClient.from_settings()
    logger.info(
        f"[INIT] ✓ Ollama backend {settings.OLLAMA_BASE_URL} (model {settings.OLLAMA_MODEL})"
    )
    try:
        yield
    finally:
        await app.state.ollama_client.aclose()


# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Mindmap Studio LLM Relay",
    description=(
        "Generate, edit and chat about markdown mind maps.\n"
        "Backend output is normalized to markdown; chat replies are streamed."
    ),
    version="1.0.0",
    lifespan=lifespan,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Missing/empty required fields are rejected before any backend call."""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    logger.info(f"Rejected request on {request.url.path}: {problems}")
    body = ErrorResponse(error=problems or "Invalid request body.")
    return JSONResponse(status_code=400, content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(error="An internal server error occurred.")
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Routes ───────────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "Mindmap Studio LLM Relay",
        "version": app.version,
        "backend": settings.OLLAMA_BASE_URL,
    }


app.include_router(mindmap.router, prefix="/api/v1")
app.include_router(chat.router, prefix="/api/v1")
