"""aiohttp client for the BeeBot backend API."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import aiohttp
from pydantic import ValidationError

from .chunks import StreamChunk
from .config import API_TOKEN, API_URL, MAX_UPLOAD_MB, REQUEST_TIMEOUT
from .errors import ApiError
from .schemas import (
    ChatRequest,
    ContentType,
    ConversationListResponse,
    ConversationWithMessages,
    DocumentDownloadUrl,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    GhostwriteRequest,
    GhostwriteResponse,
    InfographicListItem,
    InfographicRequest,
    InfographicResponse,
    RefineRequest,
    RefineResponse,
)
from .sse import iter_chunks

logger = logging.getLogger(__name__)

NETWORK_ERROR = (
    "Network error: Unable to reach the server. "
    "Please check your connection or try again later."
)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
    if response.ok:
        return
    async with response:
        if response.status == 401:
            raise ApiError("Authentication required", 401, should_reauth=True)
        if response.status == 403:
            raise ApiError("Access denied - you may not be registered", 403)
        body = await response.text()
        raise ApiError(f"Request failed: {response.reason} - {body}", response.status)


async def _iter_body(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    """Yield raw body blocks, turning transport failures into ApiError."""
    try:
        async for block in response.content.iter_any():
            yield block
    except _TRANSPORT_ERRORS as exc:
        raise ApiError(f"Network error: the response stream was interrupted ({exc})", 0) from exc
    finally:
        if response.content.at_eof():
            response.release()
        else:
            # Abandoned mid-stream; the connection cannot be reused
            response.close()


class ApiClient:
    """Thin async wrapper over the backend endpoints.

    Use as an async context manager, or call ``close()`` when done. A caller
    supplied ``aiohttp.ClientSession`` is not closed by the client.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        token: str | None = API_TOKEN,
        session: aiohttp.ClientSession | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> ApiClient:
        self._get_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        stream: bool = False,
        check: bool = True,
        **kwargs: Any,
    ) -> aiohttp.ClientResponse:
        if stream:
            # No total limit on a streamed answer, only on connecting
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.timeout)
        else:
            timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            response = await self._get_session().request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=timeout,
                **kwargs,
            )
        except _TRANSPORT_ERRORS as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(NETWORK_ERROR, 0) from exc

        logger.debug("%s %s -> %s", method, path, response.status)
        if check:
            await _raise_for_status(response)
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        async with response:
            try:
                return await response.json(content_type=None)
            except _TRANSPORT_ERRORS as exc:
                raise ApiError(NETWORK_ERROR, 0) from exc
            except ValueError as exc:
                raise ApiError("Failed to parse response", response.status) from exc

    # -- chat --

    async def open_chat_stream(self, request: ChatRequest) -> aiohttp.ClientResponse:
        """POST /chat and return the streaming response once headers arrive."""
        logger.debug(
            "Chat request: query=%r conversation_id=%s", request.query[:50], request.conversation_id
        )
        return await self._request("POST", "/chat", json=request.to_payload(), stream=True)

    async def open_edit_stream(
        self, conversation_id: str, message_id: str, content: str
    ) -> aiohttp.ClientResponse:
        """Replace a message's content and stream the regenerated answer."""
        request = ChatRequest(query=content, conversation_id=conversation_id)
        return await self._request(
            "POST",
            f"/chat/{conversation_id}/messages/{message_id}/edit",
            json=request.to_payload(),
            stream=True,
        )

    def stream_chunks(self, response: aiohttp.ClientResponse) -> AsyncIterator[StreamChunk]:
        """Lazily parse a streaming response into chunks."""
        return iter_chunks(_iter_body(response))

    # -- conversations --

    async def get_conversations(
        self, page: int = 1, page_size: int = 20
    ) -> ConversationListResponse:
        data = await self._json(
            "GET", "/conversations", params={"page": page, "page_size": page_size}
        )
        return ConversationListResponse.model_validate(data)

    async def get_conversation_with_messages(
        self, conversation_id: str, message_limit: int = 50
    ) -> ConversationWithMessages:
        data = await self._json(
            "GET",
            f"/conversations/{conversation_id}/full",
            params={"message_limit": message_limit},
        )
        return ConversationWithMessages.model_validate(data)

    async def delete_conversation(self, conversation_id: str) -> None:
        response = await self._request("DELETE", f"/conversations/{conversation_id}")
        response.release()

    async def get_frequent_questions(self, limit: int = 4) -> list[str]:
        """Most frequently asked questions; an empty list if unavailable."""
        try:
            data = await self._json(
                "GET", "/conversations/frequent-questions", params={"limit": limit}
            )
        except ApiError as exc:
            logger.debug("Frequent questions unavailable: %s", exc)
            return []
        return list(data.get("questions") or []) if isinstance(data, dict) else []

    # -- documents --

    async def upload_document(
        self, path: Path, title: str | None = None, description: str | None = None
    ) -> DocumentUploadResponse:
        """Upload a file as multipart form data."""
        logger.debug("Uploading %s (%d bytes)", path.name, path.stat().st_size)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        with path.open("rb") as fh:
            form = aiohttp.FormData()
            form.add_field("file", fh, filename=path.name, content_type=content_type)
            if title:
                form.add_field("title", title)
            if description:
                form.add_field("description", description)
            response = await self._request("POST", "/documents/upload", data=form, check=False)

        async with response:
            if 200 <= response.status < 300:
                try:
                    data = await response.json(content_type=None)
                    return DocumentUploadResponse.model_validate(data)
                except (ValueError, ValidationError) as exc:
                    raise ApiError("Failed to parse response", response.status) from exc
            if response.status == 401:
                raise ApiError("Authentication required", 401, should_reauth=True)
            if response.status == 413:
                raise ApiError(f"File too large (max {MAX_UPLOAD_MB}MB)", 413)
            if response.status == 415:
                raise ApiError("Unsupported file type. Allowed: PDF, DOCX, TXT", 415)
            try:
                detail = (await response.json(content_type=None)).get("detail")
            except (ValueError, AttributeError):
                detail = None
            raise ApiError(detail or f"Upload failed: {response.reason}", response.status)

    async def get_document_status(self, document_id: str) -> DocumentResponse:
        data = await self._json("GET", f"/documents/{document_id}")
        return DocumentResponse.model_validate(data)

    async def list_documents(
        self,
        skip: int = 0,
        limit: int = 20,
        status: str | None = None,
        file_type: str | None = None,
    ) -> DocumentListResponse:
        params: dict[str, Any] = {"skip": skip, "limit": limit}
        if status:
            params["status"] = status
        if file_type:
            params["file_type"] = file_type
        data = await self._json("GET", "/documents", params=params)
        return DocumentListResponse.model_validate(data)

    async def delete_document(self, document_id: str) -> dict[str, Any]:
        return await self._json("DELETE", f"/documents/{document_id}")

    async def get_document_download_url(
        self, document_id: str, expires_in: int = 3600
    ) -> DocumentDownloadUrl:
        data = await self._json(
            "GET", f"/documents/{document_id}/download-url", params={"expires_in": expires_in}
        )
        return DocumentDownloadUrl.model_validate(data)

    # -- ghostwriter --

    async def get_content_types(self) -> list[ContentType]:
        data = await self._json("GET", "/ghostwriter/types")
        return [ContentType.model_validate(item) for item in data]

    async def generate_content(self, request: GhostwriteRequest) -> GhostwriteResponse:
        data = await self._json(
            "POST", "/ghostwriter/generate", json=request.model_dump(exclude_none=True)
        )
        return GhostwriteResponse.model_validate(data)

    async def refine_content(self, request: RefineRequest) -> RefineResponse:
        data = await self._json("POST", "/ghostwriter/refine", json=request.model_dump())
        return RefineResponse.model_validate(data)

    # -- infographics --

    async def get_infographic_styles(self) -> list[dict[str, str]]:
        return await self._json("GET", "/infographic/styles")

    async def generate_infographic(self, request: InfographicRequest) -> InfographicResponse:
        data = await self._json(
            "POST", "/infographic/generate", json=request.model_dump(exclude_none=True)
        )
        return InfographicResponse.model_validate(data)

    async def list_infographics(
        self, limit: int = 20, offset: int = 0
    ) -> list[InfographicListItem]:
        data = await self._json("GET", "/infographic/", params={"limit": limit, "offset": offset})
        return [InfographicListItem.model_validate(item) for item in data.get("items", [])]

    async def get_infographic(self, infographic_id: str) -> InfographicResponse:
        data = await self._json("GET", f"/infographic/{infographic_id}")
        return InfographicResponse.model_validate(data)

    def infographic_download_url(self, infographic_id: str) -> str:
        # The backend answers this URL with a redirect to the stored image
        return f"{self.base_url}/infographic/{infographic_id}/download"

    # -- misc --

    async def check_health(self) -> bool:
        try:
            response = await self._request("GET", "/health", check=False)
        except ApiError:
            return False
        async with response:
            return response.ok
