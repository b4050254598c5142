"""Fold a streamed chat response into one assistant message.

``reduce_chunk`` is the pure step: it takes the accumulated ``StreamState`` and
one chunk and returns the next state. ``StreamingChatReducer`` drives that fold
over a live chunk source, publishing every intermediate state so callers can
render partial text, tool progress and sources as they arrive.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable

from pydantic import BaseModel, Field

from .chunks import (
    ConfidenceChunk,
    MetaChunk,
    RewriteChunk,
    SourcesChunk,
    StreamChunk,
    TimingChunk,
    TokenChunk,
    ToolCallChunk,
    ToolErrorChunk,
    ToolProgressChunk,
    ToolResultChunk,
)
from .config import ERROR_TEMPLATE, NO_RESPONSE_TEXT
from .errors import ApiError
from .models import (
    ConfidenceData,
    Message,
    MessageTimings,
    RewriteData,
    Source,
    ToolResultData,
    ToolState,
    new_message_id,
)

logger = logging.getLogger(__name__)


class StreamState(BaseModel):
    """Everything accumulated so far for one in-flight turn."""

    content: str = ""
    sources: list[Source] = []
    timings: MessageTimings | None = None
    confidence: ConfidenceData | None = None
    disclaimer: str | None = None
    tool: ToolState = Field(default_factory=ToolState)
    tool_name: str | None = None
    tool_result: ToolResultData | None = None
    tool_error: str | None = None
    conversation_id: str | None = None
    user_message_id: str | None = None
    rewrite: RewriteData | None = None
    chunk_count: int = 0


def _reduce_tool(state: StreamState, chunk: StreamChunk) -> dict:
    """Return the state updates for a tool lifecycle chunk.

    The tool status only moves forward: one call per turn, and nothing after
    ``complete`` or ``error``.
    """
    tool = state.tool

    if isinstance(chunk, ToolCallChunk):
        if tool.status is not None:
            logger.warning("Ignoring second tool call '%s' in one turn", chunk.tool)
            return {}
        logger.debug("Tool call starting: %s", chunk.tool)
        return {
            "tool": ToolState(
                is_active=True, tool_name=chunk.tool, status="starting", args=chunk.args
            ),
            "tool_name": chunk.tool,
        }

    if tool.is_terminal:
        logger.warning("Ignoring %s after tool finished with '%s'", chunk.type, tool.status)
        return {}

    tool_name = state.tool_name or chunk.tool

    if isinstance(chunk, ToolProgressChunk):
        logger.debug("Tool progress: %s", chunk.message)
        return {
            "tool": tool.model_copy(
                update={
                    "is_active": True,
                    "tool_name": tool_name,
                    "status": "processing",
                    "message": chunk.message,
                }
            ),
            "tool_name": tool_name,
        }

    if isinstance(chunk, ToolResultChunk):
        updates: dict = {
            "tool": tool.model_copy(
                update={
                    "is_active": True,
                    "tool_name": tool_name,
                    "status": "complete",
                    "result": chunk.data,
                }
            ),
            "tool_name": tool_name,
            "tool_result": chunk.data,
        }
        if chunk.data is not None and chunk.data.sources:
            logger.debug("Received %d sources from tool", len(chunk.data.sources))
            updates["sources"] = [Source.from_tool(s) for s in chunk.data.sources]
        return updates

    # ToolErrorChunk
    logger.info("Tool '%s' failed: %s", tool_name, chunk.error)
    return {
        "tool": tool.model_copy(
            update={
                "is_active": True,
                "tool_name": tool_name,
                "status": "error",
                "error": chunk.error,
            }
        ),
        "tool_name": tool_name,
        "tool_error": chunk.error,
    }


def reduce_chunk(state: StreamState, chunk: StreamChunk) -> StreamState:
    """Apply one chunk and return the new state. ``state`` is not modified."""
    updates: dict = {"chunk_count": state.chunk_count + 1}

    if isinstance(chunk, TokenChunk):
        updates["content"] = state.content + chunk.content
    elif isinstance(chunk, MetaChunk):
        if chunk.conversation_id:
            logger.debug("Received backend conversation_id: %s", chunk.conversation_id)
            updates["conversation_id"] = chunk.conversation_id
        if chunk.user_message_id:
            logger.debug("Received user_message_id: %s", chunk.user_message_id)
            updates["user_message_id"] = chunk.user_message_id
    elif isinstance(chunk, SourcesChunk):
        updates["sources"] = [Source.from_retrieval(s) for s in chunk.content]
        logger.debug("Received sources: %d", len(chunk.content))
    elif isinstance(chunk, TimingChunk):
        updates["timings"] = MessageTimings.from_timing(chunk.content)
    elif isinstance(chunk, ConfidenceChunk):
        updates["confidence"] = chunk.content
        updates["disclaimer"] = chunk.disclaimer
    elif isinstance(chunk, RewriteChunk):
        logger.debug("Query rewritten to: %s", chunk.content.rewritten)
        updates["rewrite"] = chunk.content
    elif isinstance(chunk, (ToolCallChunk, ToolProgressChunk, ToolResultChunk, ToolErrorChunk)):
        updates.update(_reduce_tool(state, chunk))

    return state.model_copy(update=updates)


def finalize(state: StreamState, message_id: str | None = None) -> Message:
    """Turn a completed stream into the assistant message."""
    if state.content:
        content = state.content
    elif state.tool_result is not None:
        # The tool result block is the message body
        content = ""
    else:
        content = NO_RESPONSE_TEXT

    return Message(
        id=message_id or new_message_id(),
        role="assistant",
        content=content,
        sources=list(state.sources),
        confidence=state.confidence,
        disclaimer=state.disclaimer,
        timings=state.timings,
        tool_name=state.tool_name,
        tool_result=state.tool_result,
        tool_error=state.tool_error,
    )


def failure_message(error: BaseException) -> Message:
    """The assistant message shown in place of a turn whose transport failed."""
    description = getattr(error, "message", None) or str(error) or "Unknown error"
    return Message(
        id=new_message_id(),
        role="assistant",
        content=ERROR_TEMPLATE.format(error=description),
        is_error=True,
    )


class StreamingChatReducer:
    """Consume one response stream and produce its assistant message.

    ``on_update`` is called with the new state after every chunk, before the
    next chunk is read.
    """

    def __init__(self, on_update: Callable[[StreamState], None] | None = None):
        self.on_update = on_update
        self.state = StreamState()

    async def updates(self, chunks: AsyncIterator[StreamChunk]) -> AsyncIterator[StreamState]:
        """Yield the state after each chunk.

        Closing this generator early closes ``chunks`` as well, which releases
        the underlying response.
        """
        try:
            async for chunk in chunks:
                self.state = reduce_chunk(self.state, chunk)
                if self.on_update is not None:
                    self.on_update(self.state)
                yield self.state
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

    async def run(self, chunks: AsyncIterator[StreamChunk]) -> Message:
        """Consume the whole stream.

        Returns the finalized message, or the failure message if the transport
        broke off. Authentication failures are re-raised.
        """
        updates = self.updates(chunks)
        try:
            async for _ in updates:
                pass
        except ApiError as exc:
            if exc.should_reauth:
                raise
            logger.error("Stream failed after %d chunks: %s", self.state.chunk_count, exc)
            return failure_message(exc)
        finally:
            await updates.aclose()

        logger.debug(
            "Stream complete: %d chunks, %d chars", self.state.chunk_count, len(self.state.content)
        )
        return finalize(self.state)
