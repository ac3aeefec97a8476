"""
Stream Relay
============
Re-frames an Ollama NDJSON byte stream into ordered text fragments.

  • Bytes are buffered until a full ``\\n``-terminated line is seen
  • Each line is parsed as JSON; malformed lines are dropped, not fatal
  • A string ``response`` field becomes the next fragment
  • Trailing bytes without a newline at end-of-data are discarded
  • ``cancel()`` stops the relay promptly and closes the transport quietly
"""

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional, Protocol

logger = logging.getLogger(__name__)


class ByteStream(Protocol):
    """What the relay needs from a transport (``httpx.Response`` fits)."""

    def aiter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


def parse_stream_line(line: bytes) -> Optional[str]:
    """``response`` fragment carried by one NDJSON line, if any."""
    text = line.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.debug(f"[RELAY] Dropping malformed line: {text[:200]}")
        return None
    if not isinstance(payload, dict):
        return None
    if "error" in payload:
        logger.warning(f"[RELAY] Backend reported: {payload['error']}")
    fragment = payload.get("response")
    if isinstance(fragment, str) and fragment:
        return fragment
    return None


class StreamRelay:
    """Single-use async iterator of fragments over one backend stream."""

    def __init__(self, stream: ByteStream):
        self._stream = stream
        self._parts: List[str] = []
        self._cancel_event = asyncio.Event()
        self._started = False
        self._closed = False
        self.completed = False

    @property
    def accumulated(self) -> str:
        return "".join(self._parts)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request a stop; the pending read is abandoned and the transport closed."""
        if not self.completed:
            self._cancel_event.set()

    async def aclose(self) -> None:
        self.cancel()
        await self._close_transport()

    async def _close_transport(self) -> None:
        if not self._closed:
            self._closed = True
            await self._stream.aclose()

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("StreamRelay can only be iterated once")
        self._started = True
        return self._iterate()

    async def collect(self) -> str:
        """Drain the relay and return the full accumulated text."""
        async for _ in self:
            pass
        return self.accumulated

    async def _next_read(self, chunks: AsyncIterator[bytes]) -> Optional[bytes]:
        """Next transport chunk, or None on end-of-data or cancellation."""
        read = asyncio.ensure_future(chunks.__anext__())
        cancelled = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {read, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (read, cancelled):
                if not task.done():
                    task.cancel()
        if cancelled in done or self.cancelled:
            # Closing the transport may fail the pending read; the abort wins.
            if read.done() and not read.cancelled():
                read.exception()
            return None
        try:
            return read.result()
        except StopAsyncIteration:
            return None

    async def _iterate(self) -> AsyncIterator[str]:
        chunks = self._stream.aiter_bytes().__aiter__()
        buffer = b""
        try:
            while not self.cancelled:
                data = await self._next_read(chunks)
                if data is None:
                    break
                buffer += data
                *lines, buffer = buffer.split(b"\n")
                for line in lines:
                    if self.cancelled:
                        break
                    fragment = parse_stream_line(line)
                    if fragment is None:
                        continue
                    self._parts.append(fragment)
                    yield fragment

            if self.cancelled:
                logger.info("[RELAY] Stream cancelled by caller")
            else:
                if buffer.strip():
                    logger.debug(f"[RELAY] Discarding {len(buffer)} trailing bytes")
                self.completed = True
        finally:
            await self._close_transport()
