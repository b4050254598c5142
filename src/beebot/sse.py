"""Server-Sent Events framing for the chat stream.

The backend writes ``data: <json>\\n\\n`` frames onto one long-lived response;
the end of the response body is the end of the turn.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator

from pydantic import ValidationError

from .chunks import StreamChunk, parse_chunk

logger = logging.getLogger(__name__)


def _frame_data(frame: str) -> str | None:
    """Return the joined ``data:`` payload of one frame, or None if it has none."""
    data_lines = [
        line[5:].removeprefix(" ")
        for line in frame.split("\n")
        if line.startswith("data:")
    ]
    if not data_lines:
        return None
    return "\n".join(data_lines)


async def iter_frames(body: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the data payload of each complete frame in arrival order."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    try:
        async for block in body:
            buffer = (buffer + decoder.decode(block)).replace("\r\n", "\n")
            *frames, buffer = buffer.split("\n\n")
            for frame in frames:
                payload = _frame_data(frame)
                if payload is not None:
                    yield payload

        # The body may end without the final blank line
        buffer += decoder.decode(b"", final=True)
        payload = _frame_data(buffer.strip("\r\n"))
        if payload is not None:
            yield payload
    finally:
        aclose = getattr(body, "aclose", None)
        if aclose is not None:
            await aclose()


async def iter_chunks(body: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
    """Yield typed chunks, skipping frames that do not decode."""
    frames = iter_frames(body)
    try:
        async for payload in frames:
            try:
                chunk = parse_chunk(payload)
            except ValidationError:
                logger.warning("Failed to parse chunk: %s", payload[:200])
                continue
            yield chunk
    finally:
        await frames.aclose()
