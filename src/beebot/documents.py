"""Upload polling: wait until the backend has processed a document."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from .config import DOCUMENT_MAX_WAIT, DOCUMENT_POLL_INTERVAL, DOCUMENT_POLL_MAX_INTERVAL
from .errors import ApiError
from .models import Attachment
from .schemas import DocumentResponse

logger = logging.getLogger(__name__)


async def wait_for_document_ready(
    client,
    document_id: str,
    on_status_change: Callable[[str], None] | None = None,
    poll_interval: float = DOCUMENT_POLL_INTERVAL,
    max_wait: float = DOCUMENT_MAX_WAIT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> DocumentResponse:
    """Poll a document until it is ``completed`` or ``failed``.

    Rate-limited polls (HTTP 429) double the interval up to
    DOCUMENT_POLL_MAX_INTERVAL; a successful poll resets it. Any other error
    propagates. Raises ApiError(408) once ``max_wait`` seconds have passed.
    """
    start = clock()
    interval = poll_interval

    while clock() - start < max_wait:
        try:
            doc = await client.get_document_status(document_id)
        except ApiError as exc:
            if exc.status != 429:
                raise
            interval = min(interval * 2, DOCUMENT_POLL_MAX_INTERVAL)
            logger.warning("Rate limited polling %s, backing off to %.0fs", document_id, interval)
        else:
            if on_status_change is not None:
                on_status_change(doc.status)
            if doc.is_terminal:
                logger.debug("Document %s finished with status %s", document_id, doc.status)
                return doc
            interval = poll_interval

        await sleep(interval)

    raise ApiError("Document processing timeout", 408)


def attachment_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower().lstrip(".")
    return suffix if suffix in ("pdf", "docx", "txt") else "other"


def to_attachment(doc: DocumentResponse) -> Attachment:
    """An attachment reference; failed documents keep their error for display."""
    return Attachment(
        id=doc.id,
        name=doc.filename,
        type=attachment_type(doc.filename),
        size=doc.file_size,
        status=doc.status,
        error_message=doc.error_message,
    )
