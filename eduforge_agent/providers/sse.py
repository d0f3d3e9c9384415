"""
Server-Sent Events frame parsing for streamed reasoning responses.

Network reads split the stream at arbitrary byte positions, so the parser
keeps the incomplete trailing line buffered across feed() calls. Each
``data:`` line becomes one frame (OpenAI-style streams send one JSON object
per data line); an ``event:`` line tags the data lines that follow it until
the next blank line. ``[DONE]`` marks the end of the stream.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    """One data line of the stream, with the event type in effect for it."""

    data: str
    event: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_MARKER


class SSEFrameParser:
    """
    Incremental line parser for text/event-stream bodies.

    Example:
        >>> parser = SSEFrameParser()
        >>> parser.feed('data: {"a"')
        []
        >>> parser.feed(': 1}\\n\\n')
        [SSEFrame(data='{"a": 1}', event=None)]
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event: Optional[str] = None

    def feed(self, text: str) -> list[SSEFrame]:
        """
        Consume a chunk of text and return the frames it completed.

        Args:
            text: Next chunk of the decoded body (any length, any split point).

        Returns:
            Frames whose lines were completed by this chunk, in order.
        """
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        frames: list[SSEFrame] = []
        for line in lines:
            frame = self._parse_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[SSEFrame]:
        """Parse whatever is left once the body has ended."""
        rest, self._buffer = self._buffer, ""
        if not rest:
            return []
        frame = self._parse_line(rest.rstrip("\r"))
        return [frame] if frame is not None else []

    def _parse_line(self, line: str) -> Optional[SSEFrame]:
        if not line:
            # blank line ends the event block
            self._event = None
            return None
        if line.startswith(":"):
            return None  # comment / keep-alive
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value.strip() or None
            return None
        if field == "data":
            return SSEFrame(data=value, event=self._event)
        # id:, retry: and unknown fields carry nothing we use
        return None


def _decode(frame: SSEFrame) -> Optional[dict[str, Any]]:
    if not frame.data.strip():
        return None
    try:
        payload = json.loads(frame.data)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed stream frame: {frame.data[:200]!r}")
        return None
    if not isinstance(payload, dict):
        logger.warning(f"Skipping non-object stream frame: {frame.data[:200]!r}")
        return None
    if frame.event and "event" not in payload:
        payload["event"] = frame.event
    return payload


async def iter_sse_payloads(chunks: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """
    Decode JSON payloads from a streamed body.

    Stops at the [DONE] marker. Malformed or non-object payloads are logged
    and skipped; they never abort the stream.

    Args:
        chunks: Decoded text chunks as read from the network.

    Yields:
        Parsed payload objects. A frame's event type, if any, is exposed
        under the "event" key when the payload does not already have one.
    """
    parser = SSEFrameParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            if frame.is_done:
                return
            payload = _decode(frame)
            if payload is not None:
                yield payload

    for frame in parser.flush():
        if frame.is_done:
            return
        payload = _decode(frame)
        if payload is not None:
            yield payload
