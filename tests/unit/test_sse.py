"""Tests for SSE framing and chunk decoding."""

import logging

import pytest

from beebot.chunks import MetaChunk, SourcesChunk, TokenChunk, ToolResultChunk
from beebot.sse import iter_chunks, iter_frames


async def body_of(*blocks: bytes):
    for block in blocks:
        yield block


async def collect(agen):
    return [item async for item in agen]


@pytest.mark.asyncio
async def test_frames_split_across_blocks():
    """Test that a frame split mid-JSON is reassembled."""
    frames = await collect(
        iter_frames(body_of(b'data: {"type": "tok', b'en", "content": "hi"}\n', b"\ndata: {}\n\n"))
    )
    assert frames == ['{"type": "token", "content": "hi"}', "{}"]


@pytest.mark.asyncio
async def test_multibyte_character_split_across_blocks():
    """Test that UTF-8 sequences cut by block boundaries decode intact."""
    encoded = 'data: {"type": "token", "content": "café"}\n\n'.encode()
    cut = encoded.index(b"\xa9")  # second byte of "é"
    chunks = await collect(iter_chunks(body_of(encoded[:cut], encoded[cut:])))
    assert chunks == [TokenChunk(type="token", content="café")]


@pytest.mark.asyncio
async def test_trailing_frame_without_blank_line():
    """Test that the last frame is used even if the body ends without a blank line."""
    chunks = await collect(iter_chunks(body_of(b'data: {"type": "token", "content": "end"}')))
    assert [c.content for c in chunks] == ["end"]


@pytest.mark.asyncio
async def test_non_data_lines_ignored():
    frames = await collect(
        iter_frames(body_of(b": keep-alive\n\nevent: ping\n\ndata: {\"a\": 1}\n\n"))
    )
    assert frames == ['{"a": 1}']


@pytest.mark.asyncio
async def test_malformed_frame_skipped(caplog):
    """Test that bad JSON is logged and the stream continues."""
    body = body_of(
        b'data: {"type": "token", "content": "a"}\n\n',
        b"data: {not json\n\n",
        b'data: {"type": "token", "content": "b"}\n\n',
    )
    with caplog.at_level(logging.WARNING, logger="beebot.sse"):
        chunks = await collect(iter_chunks(body))

    assert "".join(c.content for c in chunks) == "ab"
    assert "Failed to parse chunk" in caplog.text


@pytest.mark.asyncio
async def test_unknown_chunk_type_skipped():
    body = body_of(
        b'data: {"type": "answer", "content": "x"}\n\n',
        b'data: {"type": "meta", "conversation_id": "c1"}\n\n',
    )
    chunks = await collect(iter_chunks(body))
    assert chunks == [MetaChunk(type="meta", conversation_id="c1")]


@pytest.mark.asyncio
async def test_chunk_variants_decoded():
    body = body_of(
        b'data: {"type": "sources", "content": [{"title": "Standup"}]}\n\n',
        b'data: {"type": "tool_result", "tool": "infographic_generator", "status": "complete",'
        b' "data": {"image": "abc", "sources": [{"title": "S", "score": 72}]}}\n\n',
    )
    sources, result = await collect(iter_chunks(body))
    assert isinstance(sources, SourcesChunk)
    assert [s.title for s in sources.content] == ["Standup"]
    assert isinstance(result, ToolResultChunk)
    assert result.data.image == "abc"
    assert result.data.sources[0].title == "S"
    assert result.data.sources[0].score == 72


@pytest.mark.asyncio
async def test_closing_chunks_closes_body():
    """Test that abandoning the chunk stream releases the underlying body."""
    closed = False

    async def body():
        nonlocal closed
        try:
            yield b'data: {"type": "token", "content": "a"}\n\n'
            yield b'data: {"type": "token", "content": "b"}\n\n'
        finally:
            closed = True

    chunks = iter_chunks(body())
    first = await chunks.__anext__()
    assert first.content == "a"
    await chunks.aclose()
    assert closed


@pytest.mark.asyncio
async def test_badly_typed_source_entries_skip_the_frame(caplog):
    """Test that valid JSON with wrongly typed source fields is treated as malformed."""
    body = body_of(
        b'data: {"type": "sources", "content": [{"title": "Q3", "relevance_score": "high"}]}\n\n',
        b'data: {"type": "tool_result", "data": {"sources": [{"title": 42, "score": 80}]}}\n\n',
        b'data: {"type": "token", "content": "ok"}\n\n',
    )
    with caplog.at_level(logging.WARNING, logger="beebot.sse"):
        chunks = await collect(iter_chunks(body))

    assert [type(c) for c in chunks] == [TokenChunk]
    assert caplog.text.count("Failed to parse chunk") == 2


@pytest.mark.asyncio
async def test_numeric_string_score_is_accepted():
    body = body_of(b'data: {"type": "sources", "content": [{"title": "Q3", "relevance_score": "0.9"}]}\n\n')
    (sources,) = await collect(iter_chunks(body))
    assert sources.content[0].relevance_score == 0.9


@pytest.mark.asyncio
async def test_crlf_split_across_blocks():
    """Test that a CRLF pair cut between two blocks leaves no stray carriage return."""
    frames = await collect(
        iter_frames(body_of(b'data: {"type": "token", "content": "a"}\r', b"\n\r\ndata: {}\r\n\r\n"))
    )
    assert frames == ['{"type": "token", "content": "a"}', "{}"]
