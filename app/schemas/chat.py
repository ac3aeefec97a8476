"""
Conversation + backend wire models.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One immutable message in a conversation."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class GenerationRequest(BaseModel):
    """Body POSTed to the backend's /api/generate."""
    prompt: str
    model: str
    stream: bool = False


# ── Inbound ──────────────────────────────────────────────────────────────────

class ChatRequest(BaseModel):
    conversation: List[ConversationTurn] = Field(..., min_length=1)
    mindmap: Optional[str] = Field(
        default=None,
        description="When given, replaces any system turn with a fresh grounding turn",
    )
    stream: bool = True


class ChatResponse(BaseModel):
    """JSON fallback when the reply is not streamed."""
    response: str
