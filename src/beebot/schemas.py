"""Request and response envelopes of the backend HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, field_validator

from .models import StructuredData

DocType = Literal["meeting", "email", "document", "note"]
MeetingCategory = Literal["board", "1on1", "standup", "client", "internal", "external"]
DocumentType = Literal["pdf", "docx", "txt"]
DocumentStatus = Literal["pending", "processing", "completed", "failed"]

DOC_TYPES = ("meeting", "email", "document", "note", "all")
MEETING_CATEGORIES = ("board", "1on1", "standup", "client", "internal", "external", "all")


class ChatRequest(BaseModel):
    query: str
    stream: bool = True
    conversation_id: str | None = None
    include_history: bool = True
    doc_type: DocType | None = None
    meeting_category: MeetingCategory | None = None
    document_ids: list[str] | None = None

    @field_validator("doc_type", "meeting_category", mode="before")
    @classmethod
    def _all_means_unfiltered(cls, value: Any) -> Any:
        return None if value == "all" else value

    @field_validator("document_ids")
    @classmethod
    def _empty_means_unscoped(cls, value: list[str] | None) -> list[str] | None:
        return value or None

    def to_payload(self) -> dict[str, Any]:
        """JSON body; unset filters are omitted so the backend applies none."""
        return self.model_dump(exclude_none=True)


# -- conversations --


class ConversationSummary(BaseModel):
    id: str
    user_id: str | None = None
    title: str
    summary: str | None = None
    message_count: int = 0
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary] = []
    total: int = 0
    page: int = 1
    page_size: int = 20
    total_pages: int = 0


class MessageResponse(BaseModel):
    id: str
    conversation_id: str | None = None
    role: Literal["user", "assistant", "system"]
    content: str
    sources: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class ConversationWithMessages(ConversationSummary):
    messages: list[MessageResponse] = []


# -- documents --


class DocumentUploadResponse(BaseModel):
    id: str
    filename: str
    file_type: DocumentType
    file_size: int
    status: DocumentStatus
    message: str = ""


class DocumentResponse(BaseModel):
    id: str
    filename: str
    file_type: DocumentType
    file_size: int
    file_size_mb: float | None = None
    mime_type: str | None = None
    title: str | None = None
    description: str | None = None
    status: DocumentStatus
    error_message: str | None = None
    chunk_count: int = 0
    total_tokens: int = 0
    metadata: dict[str, Any] = {}
    created_at: datetime | None = None
    updated_at: datetime | None = None
    processed_at: datetime | None = None
    user_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse] = []
    total: int = 0
    skip: int = 0
    limit: int = 20
    has_more: bool = False


class DocumentDownloadUrl(BaseModel):
    id: str
    filename: str
    download_url: str
    expires_in_seconds: int


# -- ghostwriter --

ContentTypeValue = Literal[
    "linkedin_post", "email", "blog_draft", "tweet_thread", "newsletter", "meeting_summary"
]
Tone = Literal["formal", "casual", "urgent", "inspirational"]


class ContentType(BaseModel):
    type: str
    description: str


class GhostwriteRequest(BaseModel):
    content_type: ContentTypeValue
    request: str
    topic: str | None = None
    doc_type: DocType | None = None
    additional_context: str | None = None
    tone: Tone | None = None
    max_length: int | None = None

    @field_validator("doc_type", mode="before")
    @classmethod
    def _all_means_unfiltered(cls, value: Any) -> Any:
        return None if value == "all" else value


class GhostwriteResponse(BaseModel):
    content: str
    content_type: str
    word_count: int = 0
    sources: list[dict[str, Any]] = []
    confidence: dict[str, Any] = {}
    timing: dict[str, Any] = {}
    metadata: dict[str, Any] = {}


class RefineRequest(BaseModel):
    content: str
    feedback: str
    content_type: str


class RefineResponse(BaseModel):
    content: str
    content_type: str
    word_count: int = 0
    timing: dict[str, Any] = {}
    refined_from: str | None = None
    feedback_applied: str | None = None


# -- infographics --

InfographicStyle = Literal["modern", "corporate", "minimal", "vibrant", "dark"]
OutputFormat = Literal["visual", "schema", "both"]


class InfographicRequest(BaseModel):
    request: str
    topic: str | None = None
    style: InfographicStyle | None = None
    doc_type: DocType | None = None
    width: int | None = None
    height: int | None = None
    output_format: OutputFormat | None = None

    @field_validator("doc_type", mode="before")
    @classmethod
    def _all_means_unfiltered(cls, value: Any) -> Any:
        return None if value == "all" else value


class InfographicResponse(BaseModel):
    id: str | None = None
    structured_data: StructuredData
    image: str | None = None  # Base64
    image_url: str | None = None
    sources: list[dict[str, Any]] = []
    confidence: Any = None
    metadata: Any = None
    error_message: str | None = None


class InfographicListItem(BaseModel):
    id: str
    headline: str | None = None
    style: str | None = None
    status: str
    image_url: str | None = None
    created_at: str | None = None
