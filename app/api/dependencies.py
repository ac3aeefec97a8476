from fastapi import Request

from app.services.ollama_client import OllamaClient


def get_ollama_client(request: Request) -> OllamaClient:
    """Backend client created in the app lifespan."""
    return request.app.state.ollama_client
