"""Typed frames of the chat streaming protocol.

Every SSE ``data:`` frame decodes to exactly one chunk variant, selected by its
``type`` field. Variants only carry the fields that belong to them.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .models import ConfidenceData, RetrievalSource, RewriteData, TimingData, ToolResultData


class MetaChunk(BaseModel):
    type: Literal["meta"]
    conversation_id: str | None = None
    user_message_id: str | None = None


class SourcesChunk(BaseModel):
    type: Literal["sources"]
    content: list[RetrievalSource] = []


class TokenChunk(BaseModel):
    type: Literal["token"]
    content: str


class TimingChunk(BaseModel):
    type: Literal["timing"]
    content: TimingData


class ConfidenceChunk(BaseModel):
    type: Literal["confidence"]
    content: ConfidenceData
    disclaimer: str | None = None


class ToolCallChunk(BaseModel):
    type: Literal["tool_call"]
    tool: str
    status: str = "starting"
    args: dict[str, Any] = {}
    confidence: float | None = None


class ToolProgressChunk(BaseModel):
    type: Literal["tool_progress"]
    tool: str | None = None
    status: str = "processing"
    message: str | None = None


class ToolResultChunk(BaseModel):
    type: Literal["tool_result"]
    tool: str | None = None
    status: str = "complete"
    data: ToolResultData | None = None


class ToolErrorChunk(BaseModel):
    type: Literal["tool_error"]
    tool: str | None = None
    error: str = "Tool failed"


class RewriteChunk(BaseModel):
    type: Literal["rewrite"]
    content: RewriteData


StreamChunk = Annotated[
    Union[
        MetaChunk,
        SourcesChunk,
        TokenChunk,
        TimingChunk,
        ConfidenceChunk,
        ToolCallChunk,
        ToolProgressChunk,
        ToolResultChunk,
        ToolErrorChunk,
        RewriteChunk,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[StreamChunk] = TypeAdapter(StreamChunk)


def parse_chunk(payload: str | bytes) -> StreamChunk:
    """Decode one JSON frame payload.

    Raises pydantic.ValidationError for invalid JSON, an unknown ``type`` or
    fields that do not fit the variant.
    """
    return _adapter.validate_json(payload)
