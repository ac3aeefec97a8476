"""
Chat about a mind map.

The backend has no multi-turn API here, so a conversation is flattened into
one prompt (``ROLE: content`` blocks separated by blank lines) and streamed
back through a ``StreamRelay``. Chatting never modifies the mind map.
"""

import logging
from typing import AsyncIterator, List, Optional, Sequence

from app.schemas.chat import ConversationTurn, Role
from app.services.ollama_client import OllamaClient
from app.services.stream_relay import StreamRelay

logger = logging.getLogger(__name__)


def build_system_turn(mindmap: str) -> ConversationTurn:
    return ConversationTurn(
        role=Role.SYSTEM,
        content=(
            "You are a helpful assistant answering questions about the mindmap below. "
            "Base your answers on it and say so when it does not cover the question.\n\n"
            f"Mindmap (markdown):\n{mindmap}"
        ),
    )


def build_conversation(
    mindmap: str, history: Sequence[ConversationTurn]
) -> List[ConversationTurn]:
    """Fresh grounding turn first, then the non-system history in order."""
    turns = [build_system_turn(mindmap)]
    turns.extend(turn for turn in history if turn.role != Role.SYSTEM)
    return turns


def flatten_conversation(conversation: Sequence[ConversationTurn]) -> str:
    return "".join(
        f"{turn.role.value.upper()}: {turn.content}\n\n" for turn in conversation
    )


async def open_chat_stream(
    client: OllamaClient, conversation: Sequence[ConversationTurn]
) -> StreamRelay:
    """Start a streaming generation for ``conversation``.

    Transport errors from opening the stream propagate to the caller.
    """
    prompt = flatten_conversation(conversation)
    response = await client.generate(client.build_request(prompt, stream=True))
    return StreamRelay(response)


async def converse(
    client: OllamaClient,
    history: Sequence[ConversationTurn],
    mindmap: str,
    user_text: str,
) -> StreamRelay:
    """Relay for the reply to ``user_text``; ``relay.accumulated`` holds the
    full assistant message once iteration finishes."""
    turns = list(history) + [ConversationTurn(role=Role.USER, content=user_text)]
    return await open_chat_stream(client, build_conversation(mindmap, turns))


class ChatSession:
    """Append-only conversation about one mind map, one reply in flight at a time."""

    def __init__(self, client: OllamaClient, mindmap: str):
        self.client = client
        self.mindmap = mindmap
        self.history: List[ConversationTurn] = []
        self._active: Optional[StreamRelay] = None

    def update_mindmap(self, markdown: str) -> None:
        """Ground later turns on a new document (e.g. after an edit)."""
        self.mindmap = markdown

    @property
    def streaming(self) -> bool:
        return self._active is not None

    def cancel(self) -> None:
        if self._active is not None:
            self._active.cancel()

    async def send(self, user_text: str) -> AsyncIterator[str]:
        """Stream the reply to ``user_text``.

        The user turn is recorded immediately; the assistant turn only when the
        stream runs to completion. A cancelled reply is discarded.
        """
        if self._active is not None:
            logger.info("[CHAT] Cancelling previous reply")
            await self._active.aclose()
            self._active = None

        prior = list(self.history)
        self.history.append(ConversationTurn(role=Role.USER, content=user_text))

        relay = await converse(self.client, prior, self.mindmap, user_text)
        self._active = relay
        try:
            async for fragment in relay:
                yield fragment
        finally:
            if self._active is relay:
                self._active = None
            await relay.aclose()

        if relay.completed:
            self.history.append(
                ConversationTurn(role=Role.ASSISTANT, content=relay.accumulated)
            )
            logger.info(f"[CHAT] ✓ Reply complete ({len(relay.accumulated)} chars)")
        else:
            logger.info("[CHAT] Reply cancelled, not recorded")
