"""Chat session: the conversation store, the backend and the stream reducer together."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiohttp
from pydantic import BaseModel

from .client import ApiClient
from .config import DEFAULT_MESSAGE_LIMIT, DEFAULT_PAGE_SIZE, DRAFT_CONVERSATION_ID
from .documents import to_attachment, wait_for_document_ready
from .errors import ApiError, ConversationBusyError
from .history import conversation_from_summary, message_from_response
from .models import (
    Attachment,
    Conversation,
    Message,
    RewriteData,
    Source,
    ToolState,
    new_message_id,
)
from .reducer import StreamingChatReducer, StreamState, failure_message
from .schemas import ChatRequest
from .store import ConversationRepository, ConversationStore

logger = logging.getLogger(__name__)


class _Turn(BaseModel):
    """Bookkeeping for one send or edit while its response streams in."""

    conversation_id: str
    user_message_id: str
    message_id_confirmed: bool = False


class ChatSession:
    """Headless equivalent of the chat screen.

    Holds the live state a UI renders (``streaming_content``, ``tool_state``,
    ``sources``, ``is_loading``) and calls ``on_update(session)`` whenever it
    changes. ``on_reauth()`` is called when the backend rejects the token.

    Only one turn may stream into a conversation at a time; starting another
    raises ConversationBusyError.
    """

    def __init__(
        self,
        client: ApiClient,
        store: ConversationRepository | None = None,
        on_update: Callable[[ChatSession], None] | None = None,
        on_reauth: Callable[[], None] | None = None,
    ):
        self.client = client
        self.store = store if store is not None else ConversationStore()
        self.on_update = on_update
        self.on_reauth = on_reauth

        self.current_conversation_id = DRAFT_CONVERSATION_ID
        self.sources: list[Source] = []
        self.selected_message_id: str | None = None
        self.streaming_content = ""
        self.tool_state = ToolState()
        self.rewrite: RewriteData | None = None
        self.is_loading = False
        self._in_flight: set[str] = set()

    @property
    def current_conversation(self) -> Conversation | None:
        if self.current_conversation_id == DRAFT_CONVERSATION_ID:
            return None
        return self.store.get(self.current_conversation_id)

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self)

    def _reauth(self, exc: ApiError) -> None:
        logger.warning("Authentication required: %s", exc.message)
        if self.on_reauth is not None:
            self.on_reauth()

    def _is_busy(self, conversation_id: str) -> bool:
        target = self.store.resolve(conversation_id)
        return any(self.store.resolve(c) == target for c in self._in_flight)

    def _reset_live_state(self) -> None:
        self.streaming_content = ""
        self.tool_state = ToolState()
        self.rewrite = None

    # -- browsing --

    async def load_conversations(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> int:
        """Fetch a page of conversation summaries into the store."""
        try:
            listing = await self.client.get_conversations(page, page_size)
        except ApiError as exc:
            if exc.should_reauth:
                self._reauth(exc)
            raise
        added = self.store.add_conversations(
            [conversation_from_summary(s) for s in listing.conversations]
        )
        logger.debug("Loaded %d of %d conversations", added, listing.total)
        self._notify()
        return added

    def new_conversation(self) -> None:
        self.current_conversation_id = DRAFT_CONVERSATION_ID
        self.sources = []
        self.selected_message_id = None
        self._notify()

    def _show_last_assistant_sources(self, conv: Conversation) -> None:
        last = next((m for m in reversed(conv.messages) if m.role == "assistant"), None)
        if last is not None and last.sources:
            self.sources = list(last.sources)
            self.selected_message_id = last.id
        else:
            self.sources = []
            self.selected_message_id = None

    async def select_conversation(self, conversation_id: str) -> Conversation | None:
        """Make a conversation current, fetching its messages on first open."""
        if conversation_id == DRAFT_CONVERSATION_ID:
            self.new_conversation()
            return None

        conv = self.store.get(conversation_id)
        if conv is not None and (conv.messages or conv.provisional):
            logger.debug("Messages already loaded for %s", conv.id)
            self.current_conversation_id = conv.id
            self._show_last_assistant_sources(conv)
            self._notify()
            return conv

        self.is_loading = True
        self._notify()
        try:
            full = await self.client.get_conversation_with_messages(
                conversation_id, DEFAULT_MESSAGE_LIMIT
            )
        except ApiError as exc:
            logger.error("Failed to load conversation %s: %s", conversation_id, exc)
            if exc.should_reauth:
                self._reauth(exc)
            raise
        finally:
            self.is_loading = False

        if conv is None:
            conv = conversation_from_summary(full)
            self.store.insert_conversation(conv, 0)
        else:
            conv.active_attachments = conversation_from_summary(full).active_attachments
        self.store.load_messages(conv.id, [message_from_response(m) for m in full.messages])

        self.current_conversation_id = conv.id
        self._show_last_assistant_sources(conv)
        self._notify()
        return conv

    def select_message(self, message_id: str) -> None:
        """Show the sources cited by one message of the current conversation."""
        self.selected_message_id = message_id
        conv = self.current_conversation
        message = next((m for m in conv.messages if m.id == message_id), None) if conv else None
        if message is not None and message.sources:
            self.sources = list(message.sources)
        self._notify()

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation, restoring it if the backend refuses."""
        removed = self.store.delete_conversation(conversation_id)
        if removed is None:
            return False
        index, conv = removed

        if self.store.resolve(self.current_conversation_id) == conv.id:
            remaining = self.store.list_conversations()
            self.current_conversation_id = remaining[0].id if remaining else DRAFT_CONVERSATION_ID
        self._notify()

        if conv.provisional:
            # Never reached the backend
            return True

        try:
            await self.client.delete_conversation(conv.id)
        except ApiError as exc:
            logger.error("Failed to delete conversation %s: %s", conv.id, exc)
            self.store.insert_conversation(conv, index)
            self._notify()
            if exc.should_reauth:
                self._reauth(exc)
            raise
        return True

    # -- attachments --

    async def attach_document(
        self, path: Path, on_status_change: Callable[[str], None] | None = None
    ) -> Attachment:
        """Upload a file and wait for processing.

        The returned attachment carries ``status`` and ``error_message``; a
        failed document is returned, not raised, so it can be shown as failed.
        """
        try:
            upload = await self.client.upload_document(path)
            doc = await wait_for_document_ready(self.client, upload.id, on_status_change)
        except ApiError as exc:
            if exc.should_reauth:
                self._reauth(exc)
            raise

        attachment = to_attachment(doc)
        if not attachment.is_usable:
            logger.warning("Document %s failed processing: %s", doc.filename, doc.error_message)

        conv = self.current_conversation
        if conv is not None:
            conv.active_attachments = [*(conv.active_attachments or []), attachment]
        return attachment

    # -- turns --

    async def send_message(
        self,
        content: str,
        document_ids: list[str] | None = None,
        attachments: list[Attachment] | None = None,
        doc_type: str | None = None,
        meeting_category: str | None = None,
    ) -> Message:
        """Send a user message and stream the answer into the conversation.

        Always returns the assistant message that was appended: the answer,
        the answer annotated with a tool error, or an error message.
        """
        if self._is_busy(self.current_conversation_id):
            raise ConversationBusyError(self.current_conversation_id)

        conv = self.current_conversation
        if document_ids is None:
            in_context = [*(attachments or []), *((conv.active_attachments or []) if conv else [])]
            document_ids = list(dict.fromkeys(a.id for a in in_context if a.is_usable))

        # Built before touching the store so invalid filters leave no trace
        request = ChatRequest(
            query=content,
            conversation_id=conv.id if conv and not conv.provisional else None,
            doc_type=doc_type,
            meeting_category=meeting_category,
            document_ids=document_ids,
        )

        user_message = Message(
            id=new_message_id(), role="user", content=content, attachments=attachments or None
        )
        if conv is None:
            # Draft conversation; the backend assigns the real ID in-stream
            conversation_id = self.store.create_provisional_conversation(user_message)
            self.current_conversation_id = conversation_id
        else:
            conversation_id = conv.id
            self.store.append_message(conversation_id, user_message)

        return await self._run_turn(
            _Turn(conversation_id=conversation_id, user_message_id=user_message.id),
            lambda: self.client.open_chat_stream(request),
        )

    async def edit_message(self, message_id: str, new_content: str) -> Message | None:
        """Edit a sent message, drop everything after it and regenerate.

        Returns None if the message is not in the current conversation.
        """
        conversation_id = self.current_conversation_id
        if conversation_id == DRAFT_CONVERSATION_ID:
            return None
        if self._is_busy(conversation_id):
            raise ConversationBusyError(conversation_id)

        edited = self.store.truncate_for_edit(conversation_id, message_id, new_content)
        if edited is None:
            logger.debug("Edit target %s not found in %s", message_id, conversation_id)
            return None
        self._notify()

        backend_conversation_id = self.store.resolve(conversation_id)
        return await self._run_turn(
            _Turn(conversation_id=conversation_id, user_message_id=edited.id),
            lambda: self.client.open_edit_stream(backend_conversation_id, edited.id, new_content),
        )

    def _on_stream_update(self, turn: _Turn, state: StreamState) -> None:
        if state.user_message_id and not turn.message_id_confirmed:
            self.store.rewrite_message_id(turn.user_message_id, state.user_message_id)
            turn.user_message_id = state.user_message_id
            turn.message_id_confirmed = True

        if state.conversation_id:
            conv = self.store.get(turn.conversation_id)
            if conv is not None and conv.provisional:
                old_id = conv.id
                self.store.promote_provisional_conversation(old_id, state.conversation_id)
                if self.current_conversation_id == old_id:
                    self.current_conversation_id = state.conversation_id

        self.streaming_content = state.content
        self.sources = list(state.sources)
        self.tool_state = state.tool
        self.rewrite = state.rewrite
        self._notify()

    async def _run_turn(
        self, turn: _Turn, open_stream: Callable[[], Awaitable[aiohttp.ClientResponse]]
    ) -> Message:
        self._in_flight.add(turn.conversation_id)
        self._reset_live_state()
        self.sources = []
        self.selected_message_id = None
        self.is_loading = True
        self._notify()

        reducer = StreamingChatReducer(on_update=lambda state: self._on_stream_update(turn, state))
        try:
            try:
                response = await open_stream()
                message = await reducer.run(self.client.stream_chunks(response))
            except ApiError as exc:
                if exc.should_reauth:
                    self._reauth(exc)
                    raise
                logger.error("Chat request failed: %s", exc)
                message = failure_message(exc)

            if message.is_error:
                # The user may have switched conversations meanwhile; attach the
                # error next to the message that caused it
                conv = self.store.conversation_for_message(turn.user_message_id)
                if conv is not None:
                    self.store.append_message(conv.id, message)
            else:
                self.store.append_message(turn.conversation_id, message)
                self.selected_message_id = message.id
            return message
        finally:
            self._in_flight.discard(turn.conversation_id)
            self.is_loading = False
            self._reset_live_state()
            self._notify()
