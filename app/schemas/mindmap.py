from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field


# ── Request ──────────────────────────────────────────────────────────────────

class GenerateMindMapRequest(BaseModel):
    """Request body for fresh mind map generation."""
    prompt: str = Field(..., min_length=1, description="Topic to outline as a mind map")


class EditMindMapRequest(BaseModel):
    """Request body for editing an existing mind map."""
    model_config = ConfigDict(populate_by_name=True)

    mindmap: str = Field(..., min_length=1, description="Current mind map markdown")
    instruction: str = Field(..., min_length=1, alias="prompt", description="Edit instruction")


# ── Response ─────────────────────────────────────────────────────────────────

class MindMapResponse(BaseModel):
    """Markdown outline returned to the client (real or fallback)."""
    markdown: str


class ErrorResponse(BaseModel):
    """Error envelope for rejected requests."""
    error: str
