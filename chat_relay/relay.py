"""
Streaming relay: upstream NDJSON chunks in, plain text deltas out.

The upstream sends newline-terminated JSON objects, but chunk boundaries
fall anywhere, including inside a line or inside a multi-byte character.
FrameDecoder owns the carry-over buffer and only parses complete lines;
RelaySession drives one upstream stream and yields each text delta to the
client as soon as its frame completes.

Framing rules:
- A line is complete only once its terminating newline has arrived.
- Malformed lines are dropped and counted; the session continues.
- An unterminated tail left when the upstream closes is discarded.
- A transport failure mid-stream ends the session quietly. The HTTP status
  is already committed, so the client sees only an early end of body.
"""

import json
import logging
import uuid
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

from .errors import StreamFrameError, StreamTransportError
from .models import RelayState, UpstreamFrame

logger = logging.getLogger(__name__)


def parse_frame(line: bytes) -> UpstreamFrame:
    """Decode one complete NDJSON line. Raises StreamFrameError if malformed."""
    try:
        obj = json.loads(line)
    except ValueError as e:
        raise StreamFrameError(line, str(e)) from e

    if not isinstance(obj, dict):
        raise StreamFrameError(line, "frame is not a JSON object")

    if obj.get("error"):
        logger.warning(f"Ollama reported error in stream: {obj['error']}")

    message = obj.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content:
        content = None

    return UpstreamFrame(delta_content=content, is_final=bool(obj.get("done")), raw=line)


class FrameDecoder:
    """Incremental newline framing with a carry-over buffer for partial lines."""

    def __init__(self):
        self._buffer = bytearray()
        # Bytes of _buffer already known to hold no newline.
        self._scanned = 0
        self.frames_parsed = 0
        self.frames_dropped = 0

    @property
    def pending(self) -> int:
        """Bytes of the current unterminated line."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[UpstreamFrame]:
        """Add a chunk and return the frames of every line it completed."""
        self._buffer.extend(chunk)

        frames = []
        start = 0
        end = self._buffer.find(b"\n", self._scanned)
        while end >= 0:
            self._decode_line(bytes(self._buffer[start:end]), frames)
            start = end + 1
            end = self._buffer.find(b"\n", start)

        if start:
            del self._buffer[:start]
        self._scanned = len(self._buffer)
        return frames

    def _decode_line(self, line: bytes, frames: List[UpstreamFrame]):
        if not line.strip():
            return
        try:
            frames.append(parse_frame(line))
        except StreamFrameError as e:
            self.frames_dropped += 1
            logger.warning(f"Dropping malformed frame ({e.reason}): {line[:100]!r}")
            return
        self.frames_parsed += 1

    def discard(self) -> int:
        """Drop the unterminated tail, returning its size."""
        dropped = len(self._buffer)
        self._buffer.clear()
        self._scanned = 0
        return dropped


class RelaySession:
    """
    One streaming relay operation.

    `source` is anything with an `aiter_chunks()` async iterator of bytes
    and a `failure` attribute that holds a StreamTransportError once the
    transport has died (see ollama_client.UpstreamStream). Each session
    owns its decoder; nothing is shared between sessions.
    """

    def __init__(self, source, session_id: Optional[str] = None):
        self.source = source
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.decoder = FrameDecoder()
        self.state = RelayState.ACTIVE
        self.bytes_forwarded = 0
        self.final_seen = False
        self.failure: Optional[StreamTransportError] = None

    async def relay(self) -> AsyncIterator[bytes]:
        """Yield UTF-8 encoded text deltas in upstream order."""
        logger.debug(f"Relay session {self.session_id} started")
        try:
            async with aclosing(self.source.aiter_chunks()) as chunks:
                async for chunk in chunks:
                    for frame in self.decoder.feed(chunk):
                        if frame.is_final:
                            self.final_seen = True
                        if frame.delta_content:
                            data = frame.delta_content.encode("utf-8")
                            self.bytes_forwarded += len(data)
                            yield data

            self.failure = getattr(self.source, "failure", None)
            self.state = RelayState.FAILED if self.failure else RelayState.COMPLETED
        finally:
            if self.state is RelayState.ACTIVE:
                # Closed from outside: the client went away.
                self.state = RelayState.FAILED
                logger.info(f"Relay session {self.session_id}: client disconnected")
            self._finish()

    def _finish(self):
        discarded = self.decoder.discard()
        if discarded:
            logger.warning(
                f"Relay session {self.session_id}: discarding {discarded} bytes "
                f"of unterminated frame"
            )
        if self.failure:
            logger.error(f"Relay session {self.session_id} failed mid-stream: {self.failure}")

        logger.info(
            f"Relay session {self.session_id} {self.state.value}: "
            f"frames={self.decoder.frames_parsed}, dropped={self.decoder.frames_dropped}, "
            f"bytes={self.bytes_forwarded}, final_frame={self.final_seen}"
        )
