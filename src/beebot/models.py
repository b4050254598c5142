"""Data models for conversations, messages and streamed response metadata."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import MESSAGE_ID_PREFIX, TOOL_SOURCE_PREVIEW

Role = Literal["user", "assistant", "system", "tool"]
ToolStatus = Literal["starting", "processing", "complete", "error"]
AttachmentType = Literal["pdf", "docx", "txt", "other"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return f"{MESSAGE_ID_PREFIX}{uuid.uuid4()}"


class RetrievalSource(BaseModel):
    """A source entry as retrieval sends it; ``relevance_score`` is a 0-1 similarity."""

    title: str | None = None
    date: str | float | None = None
    transcript_id: str | None = None
    speakers: list[str] | None = None
    text_preview: str | None = None
    text: str | None = None
    relevance_score: float | None = None
    meeting_category: str | None = None
    category_confidence: float | None = None


class ToolSource(BaseModel):
    """A source entry inside a tool result; ``score`` is already a percentage."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    date: str | float | None = None
    score: float | None = None


class Source(BaseModel):
    """A citation attached to an assistant message.

    ``relevance_score`` is always a 0-100 percentage. Use the ``from_*``
    constructors to convert backend payloads, which differ in units.
    """

    title: str | None = None
    date: str | float | None = None  # Formatted string or Unix timestamp (ms)
    transcript_id: str | None = None
    speakers: list[str] = []
    text_preview: str = ""
    text: str | None = None
    relevance_score: float | None = None
    meeting_category: str | None = None
    category_confidence: float | None = None

    @classmethod
    def from_retrieval(cls, raw: RetrievalSource) -> Source:
        score = raw.relevance_score
        return cls(
            title=raw.title,
            date=raw.date,
            transcript_id=raw.transcript_id,
            speakers=raw.speakers or [],
            text_preview=raw.text_preview or raw.text or "",
            text=raw.text,
            relevance_score=round(score * 100, 2) if score is not None else None,
            meeting_category=raw.meeting_category,
            category_confidence=raw.category_confidence,
        )

    @classmethod
    def from_tool(cls, raw: ToolSource) -> Source:
        return cls(
            title=raw.title,
            date=raw.date,
            text_preview=TOOL_SOURCE_PREVIEW,
            relevance_score=raw.score or None,
        )


class ConfidenceData(BaseModel):
    level: Literal["high", "medium", "low", "none"]
    avg_score: float = 0.0
    top_score: float = 0.0
    chunk_count: int = 0
    should_fallback: bool = False


class TimingData(BaseModel):
    """Timing breakdown as sent by the backend."""

    retrieval_ms: float | None = None
    prompt_ms: float | None = None
    prompt_build_ms: float | None = None
    generation_ms: float | None = None
    total_ms: float | None = None
    chunks_used: int | None = None
    tokens_generated: int | None = None


class MessageTimings(BaseModel):
    retrieval_ms: float | None = None
    prompt_build_ms: float | None = None
    generation_ms: float | None = None
    total_ms: float | None = None

    @classmethod
    def from_timing(cls, timing: TimingData) -> MessageTimings:
        return cls(
            retrieval_ms=timing.retrieval_ms,
            prompt_build_ms=(
                timing.prompt_ms if timing.prompt_ms is not None else timing.prompt_build_ms
            ),
            generation_ms=timing.generation_ms,
            total_ms=timing.total_ms,
        )


class InfographicStat(BaseModel):
    value: str
    label: str
    icon: str | None = None


class StructuredData(BaseModel):
    headline: str
    subtitle: str | None = None
    stats: list[InfographicStat] = []
    key_points: list[str] = []
    source_summary: str | None = None


class ToolResultData(BaseModel):
    """Payload of a finished tool invocation (infographic or written content)."""

    model_config = ConfigDict(extra="allow")

    structured_data: StructuredData | None = None
    image: str | None = None  # Base64 or URL
    content: str | None = None
    content_type: str | None = None
    sources: list[ToolSource] = []
    timing_ms: float | None = None


class RewriteData(BaseModel):
    original: str
    rewritten: str


class Attachment(BaseModel):
    id: str
    name: str
    type: AttachmentType = "other"
    size: int | None = None
    status: str = "completed"
    error_message: str | None = None

    @property
    def is_usable(self) -> bool:
        return self.status == "completed"


class PairedTurn(BaseModel):
    """A previous (input, response) version of an edited message."""

    user_content: str
    assistant_content: str


class Message(BaseModel):
    id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    sources: list[Source] | None = None
    confidence: ConfidenceData | None = None
    disclaimer: str | None = None
    timings: MessageTimings | None = None
    tool_name: str | None = None
    tool_result: ToolResultData | None = None
    tool_error: str | None = None
    attachments: list[Attachment] | None = None
    paired_history: list[PairedTurn] = []
    is_error: bool = False


class Conversation(BaseModel):
    id: str
    title: str
    messages: list[Message] = []
    message_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    active_attachments: list[Attachment] | None = None
    provisional: bool = False


class ToolState(BaseModel):
    """Live view of the tool invocation running inside the current turn."""

    is_active: bool = False
    tool_name: str | None = None
    status: ToolStatus | None = None
    message: str | None = None
    args: dict[str, Any] | None = None
    result: ToolResultData | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("complete", "error")
