"""In-memory conversation cache with provisional ID promotion."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from .config import PROVISIONAL_PREFIX, TITLE_MAX_CHARS
from .editing import truncate_for_edit
from .models import Conversation, Message, utcnow

logger = logging.getLogger(__name__)


def make_title(content: str) -> str:
    title = content[:TITLE_MAX_CHARS]
    if len(content) > TITLE_MAX_CHARS:
        title += "..."
    return title


class ConversationRepository(Protocol):
    """The operations the chat session needs from a conversation store."""

    def get(self, conversation_id: str) -> Conversation | None: ...

    def resolve(self, conversation_id: str) -> str: ...

    def list_conversations(self) -> list[Conversation]: ...

    def conversation_for_message(self, message_id: str) -> Conversation | None: ...

    def add_conversations(self, conversations: list[Conversation]) -> int: ...

    def insert_conversation(self, conversation: Conversation, index: int = 0) -> None: ...

    def truncate_for_edit(
        self, conversation_id: str, message_id: str, new_content: str
    ) -> Message | None: ...

    def create_provisional_conversation(self, first_message: Message) -> str: ...

    def promote_provisional_conversation(self, old_id: str, new_id: str) -> None: ...

    def append_message(self, conversation_id: str, message: Message) -> None: ...

    def rewrite_message_id(self, old_id: str, new_id: str) -> None: ...

    def load_messages(self, conversation_id: str, messages: list[Message]) -> None: ...

    def delete_conversation(self, conversation_id: str) -> tuple[int, Conversation] | None: ...


class ConversationStore:
    """Session-lifetime store of conversations, newest first.

    Conversations created locally start out provisional. When the backend
    assigns the real ID the conversation is renamed in place, and the old ID
    keeps resolving to it, so code still holding the provisional ID (an
    in-flight turn, for example) reaches the same conversation. Message IDs
    rewritten by the backend are aliased the same way.

    Single-writer: every operation is synchronous and completes without
    yielding to the event loop.
    """

    def __init__(self, conversations: list[Conversation] | None = None):
        self._conversations: list[Conversation] = list(conversations or [])
        self._aliases: dict[str, str] = {}
        self._message_aliases: dict[str, str] = {}

    # -- lookup --

    def resolve(self, conversation_id: str) -> str:
        """Follow promotions from a provisional ID to the current one."""
        seen: set[str] = set()
        while conversation_id in self._aliases and conversation_id not in seen:
            seen.add(conversation_id)
            conversation_id = self._aliases[conversation_id]
        return conversation_id

    def _index(self, conversation_id: str) -> int | None:
        target = self.resolve(conversation_id)
        for i, conv in enumerate(self._conversations):
            if conv.id == target:
                return i
        return None

    def get(self, conversation_id: str) -> Conversation | None:
        idx = self._index(conversation_id)
        return self._conversations[idx] if idx is not None else None

    def list_conversations(self) -> list[Conversation]:
        return list(self._conversations)

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: object) -> bool:
        return isinstance(conversation_id, str) and self._index(conversation_id) is not None

    def conversation_for_message(self, message_id: str) -> Conversation | None:
        """Find the conversation holding a message, following rewritten IDs."""
        target = self._message_aliases.get(message_id, message_id)
        for conv in self._conversations:
            if any(m.id == target for m in conv.messages):
                return conv
        return None

    # -- mutation --

    def add_conversations(self, conversations: list[Conversation]) -> int:
        """Append conversations not already present. Returns how many were added."""
        added = 0
        for conv in conversations:
            if conv.id in self:
                continue
            self._conversations.append(conv)
            added += 1
        return added

    def insert_conversation(self, conversation: Conversation, index: int = 0) -> None:
        if conversation.id in self:
            logger.debug("Conversation %s already present, not re-inserting", conversation.id)
            return
        self._conversations.insert(min(index, len(self._conversations)), conversation)

    def create_provisional_conversation(self, first_message: Message) -> str:
        """Insert a new local conversation at the head and return its provisional ID."""
        provisional_id = f"{PROVISIONAL_PREFIX}{uuid.uuid4()}"
        now = utcnow()
        self._conversations.insert(
            0,
            Conversation(
                id=provisional_id,
                title=make_title(first_message.content),
                messages=[first_message],
                message_count=1,
                created_at=now,
                updated_at=now,
                provisional=True,
            ),
        )
        logger.debug("Created provisional conversation %s", provisional_id)
        return provisional_id

    def promote_provisional_conversation(self, old_id: str, new_id: str) -> None:
        """Give a provisional conversation its backend ID, keeping its position.

        Promoting twice, or promoting an ID that is not (or no longer) stored,
        does nothing.
        """
        if old_id == new_id or self.resolve(old_id) == new_id:
            return
        for conv in self._conversations:
            if conv.id == old_id and conv.provisional:
                conv.id = new_id
                conv.provisional = False
                self._aliases[old_id] = new_id
                logger.debug("Promoted conversation %s -> %s", old_id, new_id)
                return

    def append_message(self, conversation_id: str, message: Message) -> None:
        """Append to a conversation. Messages for a deleted conversation are dropped."""
        conv = self.get(conversation_id)
        if conv is None:
            logger.debug("Dropping message for missing conversation %s", conversation_id)
            return
        conv.messages.append(message)
        conv.message_count = len(conv.messages)
        conv.updated_at = utcnow()

    def rewrite_message_id(self, old_id: str, new_id: str) -> None:
        if old_id == new_id:
            return
        for conv in self._conversations:
            for msg in conv.messages:
                if msg.id == old_id:
                    msg.id = new_id
                    self._message_aliases[old_id] = new_id
                    return

    def load_messages(self, conversation_id: str, messages: list[Message]) -> None:
        conv = self.get(conversation_id)
        if conv is None:
            return
        conv.messages = list(messages)
        conv.message_count = len(messages)

    def truncate_for_edit(
        self, conversation_id: str, message_id: str, new_content: str
    ) -> Message | None:
        """Cut the conversation back to an edited message. Returns the edited message."""
        conv = self.get(conversation_id)
        if conv is None:
            return None
        target = self._message_aliases.get(message_id, message_id)
        truncated = truncate_for_edit(conv.messages, target, new_content)
        if truncated is None:
            return None
        conv.messages = truncated
        conv.message_count = len(truncated)
        return truncated[-1]

    def delete_conversation(self, conversation_id: str) -> tuple[int, Conversation] | None:
        """Remove a conversation. Returns its former position and value for rollback."""
        idx = self._index(conversation_id)
        if idx is None:
            return None
        return idx, self._conversations.pop(idx)
