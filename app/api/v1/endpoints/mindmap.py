import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_ollama_client
from app.schemas.mindmap import EditMindMapRequest, GenerateMindMapRequest, MindMapResponse
from app.services.mindmap_service import edit_mindmap, generate_mindmap
from app.services.ollama_client import OllamaClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mindmap", tags=["Mind Map"])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Both endpoints always answer 200: real markdown or fallback markdown.
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/generate", response_model=MindMapResponse)
async def create_mindmap(
    request: GenerateMindMapRequest,
    client: OllamaClient = Depends(get_ollama_client),
):
    """Generate a mind map outline from a topic prompt."""
    markdown = await generate_mindmap(client, request.prompt)
    return MindMapResponse(markdown=markdown)


@router.post("/edit", response_model=MindMapResponse)
async def update_mindmap(
    request: EditMindMapRequest,
    client: OllamaClient = Depends(get_ollama_client),
):
    """Apply an instruction to an existing mind map; unchanged on failure."""
    markdown = await edit_mindmap(client, request.mindmap, request.instruction)
    return MindMapResponse(markdown=markdown)
