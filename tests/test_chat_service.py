"""Tests for conversation flattening and chat session bookkeeping."""

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from app.schemas.chat import ConversationTurn, Role
from app.services.chat_service import (
    ChatSession,
    build_conversation,
    converse,
    flatten_conversation,
)
from conftest import RecordingHandler, byte_chunks, ndjson, refuse_connection

MINDMAP = "# Solar System\n- Planets\n  - Earth"


def _turn(role: Role, content: str) -> ConversationTurn:
    return ConversationTurn(role=role, content=content)


def _streaming(*fragments: str, hang: bool = False):
    lines = [ndjson({"response": f, "done": False}) for f in fragments]

    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=byte_chunks(lines, hang=hang))

    return respond


def test_flatten_conversation():
    turns = [_turn(Role.SYSTEM, "S"), _turn(Role.USER, "U")]
    assert flatten_conversation(turns) == "SYSTEM: S\n\nUSER: U\n\n"


def test_build_conversation_replaces_system_turns():
    history = [
        _turn(Role.SYSTEM, "stale map"),
        _turn(Role.USER, "hi"),
        _turn(Role.ASSISTANT, "hello"),
    ]
    turns = build_conversation(MINDMAP, history)

    assert [t.role for t in turns] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
    assert MINDMAP in turns[0].content
    assert "stale map" not in turns[0].content


def test_turns_are_immutable():
    turn = _turn(Role.USER, "hi")
    with pytest.raises(ValidationError):
        turn.content = "changed"


@pytest.mark.asyncio
async def test_converse_streams_and_accumulates(make_client):
    handler = RecordingHandler(_streaming("Earth ", "is third."))
    client = make_client(handler)
    history = [_turn(Role.USER, "hi"), _turn(Role.ASSISTANT, "hello")]

    relay = await converse(client, history, MINDMAP, "Which planet is Earth?")
    fragments = [f async for f in relay]

    assert fragments == ["Earth ", "is third."]
    assert relay.accumulated == "Earth is third."
    prompt = handler.last["prompt"]
    assert prompt.startswith("SYSTEM: ")
    assert prompt.endswith("USER: hi\n\nASSISTANT: hello\n\nUSER: Which planet is Earth?\n\n")
    assert handler.last["stream"] is True


@pytest.mark.asyncio
async def test_converse_propagates_transport_error(make_client):
    client = make_client(refuse_connection)
    with pytest.raises(httpx.ConnectError):
        await converse(client, [], MINDMAP, "hi")


@pytest.mark.asyncio
async def test_session_records_completed_turns(make_client):
    session = ChatSession(make_client(_streaming("Hi ", "there")), MINDMAP)

    fragments = [f async for f in session.send("hello")]

    assert fragments == ["Hi ", "there"]
    assert session.history == [
        _turn(Role.USER, "hello"),
        _turn(Role.ASSISTANT, "Hi there"),
    ]
    assert session.streaming is False
    assert session.mindmap == MINDMAP


@pytest.mark.asyncio
async def test_session_discards_cancelled_reply(make_client):
    session = ChatSession(make_client(_streaming("partial", hang=True)), MINDMAP)
    received = []

    async def consume():
        async for fragment in session.send("tell me everything"):
            received.append(fragment)

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)

    session.cancel()
    await asyncio.wait_for(task, timeout=1)

    assert received == ["partial"]
    assert session.history == [_turn(Role.USER, "tell me everything")]
    assert session.streaming is False


@pytest.mark.asyncio
async def test_new_message_cancels_active_reply(make_client):
    handler = RecordingHandler(_streaming("first", hang=True))
    session = ChatSession(make_client(handler), MINDMAP)
    received = []

    async def consume():
        async for fragment in session.send("one"):
            received.append(fragment)

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)

    handler.respond = _streaming("second")
    second = [f async for f in session.send("two")]
    await asyncio.wait_for(task, timeout=1)

    assert second == ["second"]
    assert session.history == [
        _turn(Role.USER, "one"),
        _turn(Role.USER, "two"),
        _turn(Role.ASSISTANT, "second"),
    ]


@pytest.mark.asyncio
async def test_update_mindmap_grounds_later_turns(make_client):
    handler = RecordingHandler(_streaming("ok"))
    session = ChatSession(make_client(handler), MINDMAP)

    session.update_mindmap("# Galaxies")
    [f async for f in session.send("and now?")]

    assert "# Galaxies" in handler.last["prompt"]
    assert MINDMAP not in handler.last["prompt"]
