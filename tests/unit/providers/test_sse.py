"""
Tests for the SSE frame parser and payload iterator.
"""

from typing import AsyncIterator

import pytest

from eduforge_agent.providers.sse import SSEFrame, SSEFrameParser, iter_sse_payloads


async def chunked(*chunks: str) -> AsyncIterator[str]:
    for chunk in chunks:
        yield chunk


async def collect(*chunks: str) -> list[dict]:
    return [payload async for payload in iter_sse_payloads(chunked(*chunks))]


class TestFrameParser:
    def test_partial_line_is_buffered(self) -> None:
        parser = SSEFrameParser()

        assert parser.feed('data: {"a"') == []
        assert parser.feed(": 1}\n\n") == [SSEFrame(data='{"a": 1}')]

    def test_event_type_applies_until_blank_line(self) -> None:
        parser = SSEFrameParser()

        frames = parser.feed("event: delta\ndata: 1\ndata: 2\n\ndata: 3\n")

        assert frames == [
            SSEFrame(data="1", event="delta"),
            SSEFrame(data="2", event="delta"),
            SSEFrame(data="3", event=None),
        ]

    def test_comments_and_unknown_fields_ignored(self) -> None:
        parser = SSEFrameParser()

        assert parser.feed(": keep-alive\nid: 7\nretry: 100\n") == []

    def test_crlf_line_endings(self) -> None:
        parser = SSEFrameParser()

        assert parser.feed("data: x\r\n\r\n") == [SSEFrame(data="x")]

    def test_flush_returns_unterminated_line(self) -> None:
        parser = SSEFrameParser()
        parser.feed("data: tail")

        assert parser.flush() == [SSEFrame(data="tail")]
        assert parser.flush() == []

    def test_done_marker(self) -> None:
        assert SSEFrame(data="[DONE]").is_done
        assert not SSEFrame(data="{}").is_done


class TestPayloadIterator:
    @pytest.mark.asyncio
    async def test_frames_split_across_reads(self) -> None:
        payloads = await collect(
            'data: {"choices": [{"delta": {"content": "你',
            '好"}}]}\n\ndata: {"choices": []}\n',
            "\ndata: [DONE]\n\n",
        )

        assert payloads == [{"choices": [{"delta": {"content": "你好"}}]}, {"choices": []}]

    @pytest.mark.asyncio
    async def test_stops_at_done(self) -> None:
        payloads = await collect('data: {"n": 1}\n\ndata: [DONE]\n\ndata: {"n": 2}\n\n')

        assert payloads == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_malformed_frames_skipped(self) -> None:
        payloads = await collect('data: {not json\n\ndata: [1, 2]\n\ndata: {"n": 1}\n\n')

        assert payloads == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_event_type_exposed_on_payload(self) -> None:
        payloads = await collect('event: error\ndata: {"message": "quota"}\n\n')

        assert payloads == [{"message": "quota", "event": "error"}]

    @pytest.mark.asyncio
    async def test_trailing_frame_without_newline(self) -> None:
        payloads = await collect('data: {"n": 1}')

        assert payloads == [{"n": 1}]
