"""Exceptions raised by the client and the chat session."""

from __future__ import annotations


class ApiError(Exception):
    """An HTTP or transport failure talking to the backend.

    ``status`` is the HTTP status code, or 0 when the server could not be
    reached or the response body broke off mid-stream. ``should_reauth`` is set
    for 401 responses so callers can end the session.
    """

    def __init__(self, message: str, status: int, should_reauth: bool = False):
        super().__init__(message)
        self.message = message
        self.status = status
        self.should_reauth = should_reauth

    def __repr__(self) -> str:
        return f"ApiError({self.message!r}, status={self.status})"


class ConversationBusyError(Exception):
    """A turn is already streaming into this conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} already has a response in progress")
        self.conversation_id = conversation_id
