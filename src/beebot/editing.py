"""Edit-and-regenerate helpers for message version history."""

from __future__ import annotations

from .models import Message, PairedTurn


def truncate_for_edit(
    messages: list[Message], message_id: str, new_content: str
) -> list[Message] | None:
    """Cut a conversation back to an edited message.

    Everything after the edited message is dropped. The message's previous
    content and the assistant reply that followed it (empty if there was none)
    are pushed onto its ``paired_history`` before the new content is set.

    Returns the new message list, or None if ``message_id`` is not present.
    The input list and its messages are left untouched.
    """
    idx = next((i for i, m in enumerate(messages) if m.id == message_id), None)
    if idx is None:
        return None

    original = messages[idx]
    following = messages[idx + 1] if idx + 1 < len(messages) else None
    old_assistant_content = following.content if following and following.role == "assistant" else ""

    edited = original.model_copy(
        update={
            "content": new_content,
            "paired_history": [
                *original.paired_history,
                PairedTurn(user_content=original.content, assistant_content=old_assistant_content),
            ],
        }
    )
    return [*messages[:idx], edited]


def version_at(messages: list[Message], message_id: str, index: int) -> PairedTurn | None:
    """The (input, response) pair to display for one version of an edited message.

    Indexes below ``len(paired_history)`` select a historical version; the
    index equal to it selects the live message and the reply after it.
    """
    idx = next((i for i, m in enumerate(messages) if m.id == message_id), None)
    if idx is None:
        return None

    message = messages[idx]
    history = message.paired_history
    if 0 <= index < len(history):
        return history[index]
    if index != len(history):
        raise IndexError(f"version {index} out of range for message {message_id}")

    following = messages[idx + 1] if idx + 1 < len(messages) else None
    return PairedTurn(
        user_content=message.content,
        assistant_content=following.content if following and following.role == "assistant" else "",
    )
