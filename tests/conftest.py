"""Pytest fixtures for beebot tests."""

import json

import pytest


def _encode(frame: dict) -> bytes:
    return f"data: {json.dumps(frame)}\n\n".encode()


@pytest.fixture
def encode_frame():
    """Encode one protocol frame the way the backend writes it."""
    return _encode


@pytest.fixture
def answer_frames():
    """A complete turn for a new conversation: meta, sources, tokens, metadata."""
    return [
        {"type": "meta", "conversation_id": "conv-123", "user_message_id": "um-1"},
        {
            "type": "sources",
            "content": [
                {
                    "title": "Q3 planning",
                    "date": 1718000000000,
                    "transcript_id": "t-1",
                    "speakers": ["Ana", "Ben"],
                    "text_preview": "We agreed to ship the roadmap...",
                    "relevance_score": 0.87,
                }
            ],
        },
        {"type": "token", "content": "The roadmap "},
        {"type": "timing", "content": {"retrieval_ms": 120, "prompt_ms": 15, "generation_ms": 900, "total_ms": 1035}},
        {"type": "token", "content": "ships in Q3."},
        {
            "type": "confidence",
            "content": {
                "level": "high",
                "avg_score": 0.81,
                "top_score": 0.87,
                "chunk_count": 4,
                "should_fallback": False,
            },
        },
    ]


@pytest.fixture
def answer_body(answer_frames):
    return [_encode(f) for f in answer_frames]
