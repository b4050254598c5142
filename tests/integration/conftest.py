"""A fake BeeBot backend served by aiohttp for the integration tests."""

import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from beebot.client import ApiClient

DOCUMENTS = [
    {
        "id": "d-1",
        "filename": "plan.pdf",
        "file_type": "pdf",
        "file_size": 2048,
        "status": "completed",
        "chunk_count": 12,
        "total_tokens": 3400,
    },
    {
        "id": "d-2",
        "filename": "scan.pdf",
        "file_type": "pdf",
        "file_size": 4096,
        "status": "failed",
        "error_message": "No text layer",
    },
]

INFOGRAPHIC = {
    "id": "ig-1",
    "structured_data": {
        "headline": "Q3 at a glance",
        "subtitle": "Roadmap decisions",
        "stats": [{"value": "3", "label": "launches"}],
        "key_points": ["Ship the roadmap in Q3"],
    },
    "image": "aGVsbG8=",
    "sources": [{"title": "Q3 planning", "score": 81}],
}

FULL_CONVERSATION = {
    "id": "c-1",
    "title": "Roadmap",
    "message_count": 2,
    "created_at": "2024-06-01T10:00:00Z",
    "updated_at": "2024-06-02T10:00:00Z",
    "messages": [
        {
            "id": "m1",
            "role": "user",
            "content": "When does the roadmap ship?",
            "created_at": "2024-06-01T10:00:00Z",
            "metadata": {
                "paired_history": [{"userContent": "Roadmap?", "assistantContent": "Soon."}]
            },
        },
        {
            "id": "m2",
            "role": "assistant",
            "content": "It ships in Q3.",
            "created_at": "2024-06-01T10:00:04Z",
            "sources": [{"title": "Q3 planning", "date": "2024-05-30", "relevance_score": 0.5}],
        },
    ],
}


class Backend:
    """Records requests and serves scripted responses."""

    def __init__(self):
        self.requests: list[dict] = []
        self.frames: list[dict] = []
        self.deleted: list[str] = []
        self.chat_status = 200

    async def chat(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(
            {"auth": request.headers.get("Authorization"), "body": await request.json()}
        )
        if self.chat_status != 200:
            return web.Response(status=self.chat_status, text="backend exploded")
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for frame in self.frames:
            payload = f"data: {json.dumps(frame)}\n\n".encode()
            # Split each frame to exercise reassembly
            await response.write(payload[:7])
            await response.write(payload[7:])
        await response.write_eof()
        return response

    async def edit(self, request: web.Request) -> web.StreamResponse:
        self.requests.append({"path": request.path, "body": await request.json()})
        response = web.StreamResponse()
        await response.prepare(request)
        await response.write(b'data: {"type": "token", "content": "edited answer"}\n\n')
        await response.write_eof()
        return response

    # -- conversations --

    async def conversations(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "conversations": [
                    {
                        "id": "c-1",
                        "title": "Roadmap",
                        "message_count": 2,
                        "created_at": "2024-06-01T10:00:00Z",
                        "updated_at": "2024-06-02T10:00:00Z",
                    }
                ],
                "total": 1,
                "page": int(request.query["page"]),
                "page_size": int(request.query["page_size"]),
                "total_pages": 1,
            }
        )

    async def full_conversation(self, request: web.Request) -> web.Response:
        if request.match_info["conversation_id"] != "c-1":
            return web.json_response({"detail": "Conversation not found"}, status=404)
        return web.json_response(FULL_CONVERSATION)

    async def delete_conversation(self, request: web.Request) -> web.Response:
        conversation_id = request.match_info["conversation_id"]
        if conversation_id == "locked":
            return web.Response(status=403)
        self.deleted.append(conversation_id)
        return web.json_response({"status": "deleted"})

    # -- documents --

    async def upload(self, request: web.Request) -> web.Response:
        form = await request.post()
        upload = form["file"]
        if not upload.filename.endswith((".pdf", ".docx", ".txt")):
            return web.json_response({"detail": "bad type"}, status=415)
        size = len(upload.file.read())
        return web.json_response(
            {
                "id": "d-1",
                "filename": upload.filename,
                "file_type": upload.filename.rsplit(".", 1)[-1],
                "file_size": size,
                "status": "pending",
                "message": "queued",
            },
            status=201,
        )

    async def list_documents(self, request: web.Request) -> web.Response:
        self.requests.append({"path": request.path, "query": dict(request.query)})
        status = request.query.get("status")
        documents = [d for d in DOCUMENTS if status is None or d["status"] == status]
        return web.json_response(
            {
                "documents": documents,
                "total": len(documents),
                "skip": int(request.query["skip"]),
                "limit": int(request.query["limit"]),
                "has_more": False,
            }
        )

    async def document_status(self, request: web.Request) -> web.Response:
        # Token expired
        return web.Response(status=401)

    async def download_url(self, request: web.Request) -> web.Response:
        document_id = request.match_info["document_id"]
        return web.json_response(
            {
                "id": document_id,
                "filename": "plan.pdf",
                "download_url": f"https://files.example.com/{document_id}?sig=abc",
                "expires_in_seconds": int(request.query["expires_in"]),
            }
        )

    async def delete_document(self, request: web.Request) -> web.Response:
        document_id = request.match_info["document_id"]
        self.deleted.append(document_id)
        return web.json_response({"status": "deleted", "id": document_id})

    # -- ghostwriter --

    async def content_types(self, request: web.Request) -> web.Response:
        return web.json_response(
            [
                {"type": "email", "description": "Professional email"},
                {"type": "linkedin_post", "description": "LinkedIn post"},
            ]
        )

    async def generate_content(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append({"path": request.path, "body": body})
        return web.json_response(
            {
                "content": "Dear team, the roadmap ships in Q3.",
                "content_type": body["content_type"],
                "word_count": 7,
                "sources": [{"title": "Q3 planning"}],
                "timing": {"total_ms": 1200},
            }
        )

    async def refine_content(self, request: web.Request) -> web.Response:
        body = await request.json()
        return web.json_response(
            {
                "content": "Team, Q3 it is.",
                "content_type": body["content_type"],
                "word_count": 4,
                "refined_from": body["content"],
                "feedback_applied": body["feedback"],
            }
        )

    # -- infographics --

    async def infographic_styles(self, request: web.Request) -> web.Response:
        return web.json_response([{"id": "modern", "name": "Modern"}])

    async def generate_infographic(self, request: web.Request) -> web.Response:
        self.requests.append({"path": request.path, "body": await request.json()})
        return web.json_response(INFOGRAPHIC)

    async def list_infographics(self, request: web.Request) -> web.Response:
        self.requests.append({"path": request.path, "query": dict(request.query)})
        return web.json_response(
            {
                "items": [
                    {
                        "id": "ig-1",
                        "headline": "Q3 at a glance",
                        "style": "modern",
                        "status": "completed",
                        "created_at": "2024-06-01T10:00:00Z",
                    }
                ]
            }
        )

    async def get_infographic(self, request: web.Request) -> web.Response:
        if request.match_info["infographic_id"] != "ig-1":
            return web.Response(status=404, text="not found")
        return web.json_response(INFOGRAPHIC)

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})


@pytest.fixture
def backend():
    return Backend()


@pytest_asyncio.fixture
async def server(backend):
    app = web.Application()
    app.router.add_post("/chat", backend.chat)
    app.router.add_post("/chat/{conversation_id}/messages/{message_id}/edit", backend.edit)
    app.router.add_get("/conversations", backend.conversations)
    app.router.add_get("/conversations/{conversation_id}/full", backend.full_conversation)
    app.router.add_delete("/conversations/{conversation_id}", backend.delete_conversation)
    app.router.add_post("/documents/upload", backend.upload)
    app.router.add_get("/documents", backend.list_documents)
    app.router.add_get("/documents/{document_id}", backend.document_status)
    app.router.add_get("/documents/{document_id}/download-url", backend.download_url)
    app.router.add_delete("/documents/{document_id}", backend.delete_document)
    app.router.add_get("/ghostwriter/types", backend.content_types)
    app.router.add_post("/ghostwriter/generate", backend.generate_content)
    app.router.add_post("/ghostwriter/refine", backend.refine_content)
    app.router.add_get("/infographic/styles", backend.infographic_styles)
    app.router.add_post("/infographic/generate", backend.generate_infographic)
    app.router.add_get("/infographic/", backend.list_infographics)
    app.router.add_get("/infographic/{infographic_id}", backend.get_infographic)
    app.router.add_get("/health", backend.health)

    async with TestServer(app) as test_server:
        yield test_server


@pytest_asyncio.fixture
async def client(server):
    async with ApiClient(str(server.make_url("")), token="secret-token", timeout=5) as api:
        yield api
