"""Convert backend conversation payloads into local models."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from .models import (
    Attachment,
    Conversation,
    Message,
    PairedTurn,
    RetrievalSource,
    Source,
    ToolResultData,
)
from .schemas import ConversationSummary, MessageResponse

logger = logging.getLogger(__name__)


def _paired_history(raw: Any) -> list[PairedTurn]:
    """Stored history uses the camelCase keys of the web client."""
    turns: list[PairedTurn] = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        turns.append(
            PairedTurn(
                user_content=entry.get("userContent", entry.get("user_content", "")),
                assistant_content=entry.get(
                    "assistantContent", entry.get("assistant_content", "")
                ),
            )
        )
    return turns


def _tool_result(raw: Any) -> ToolResultData | None:
    if not raw:
        return None
    try:
        return ToolResultData.model_validate(raw)
    except ValidationError:
        logger.warning("Ignoring malformed stored tool result")
        return None


def _attachments(raw: Any) -> list[Attachment] | None:
    if not raw:
        return None
    try:
        return [Attachment.model_validate(a) for a in raw]
    except ValidationError:
        logger.warning("Ignoring malformed stored attachments")
        return None


def _sources(raw: Any) -> list[Source] | None:
    if not raw:
        return None
    try:
        return [Source.from_retrieval(RetrievalSource.model_validate(s)) for s in raw]
    except ValidationError:
        logger.warning("Ignoring malformed stored sources")
        return None


def message_from_response(msg: MessageResponse) -> Message:
    """Build a Message from a stored backend message, tool metadata included."""
    metadata = msg.metadata or {}
    return Message(
        id=msg.id,
        role=msg.role,
        content=msg.content,
        timestamp=msg.created_at,
        sources=_sources(msg.sources),
        tool_result=_tool_result(metadata.get("tool_result")),
        tool_name=metadata.get("tool_name"),
        attachments=_attachments(metadata.get("attachments")),
        paired_history=_paired_history(metadata.get("paired_history")),
    )


def conversation_from_summary(summary: ConversationSummary) -> Conversation:
    """A summary-only conversation; its messages are fetched on first open."""
    metadata = summary.metadata or {}
    return Conversation(
        id=summary.id,
        title=summary.title,
        message_count=summary.message_count,
        created_at=summary.created_at,
        updated_at=summary.updated_at,
        active_attachments=_attachments(metadata.get("active_attachments")),
    )
