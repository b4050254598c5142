"""Integration tests for the CLI."""

import asyncio
import json
import os
import socket
import subprocess
import sys

import pytest


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "beebot.cli", *args],
        capture_output=True,
        text=True,
        env={**os.environ, **(env or {})},
        timeout=60,
    )


@pytest.fixture
def dead_backend() -> dict[str, str]:
    """Environment pointing the CLI at a port nothing listens on."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return {"BEEBOT_API_URL": f"http://127.0.0.1:{port}/", "BEEBOT_REQUEST_TIMEOUT": "2"}


def test_cli_help():
    """Test that --help lists the commands."""
    result = run_cli("--help")
    assert result.returncode == 0
    for command in ("chat", "conversations", "upload", "documents", "health"):
        assert command in result.stdout


def test_cli_version():
    result = run_cli("--version")
    assert result.returncode == 0
    assert "beebot" in result.stdout


def test_config_reflects_environment(dead_backend):
    result = run_cli("config", env=dead_backend)
    assert result.returncode == 0
    data = json.loads(result.stdout)
    # Trailing slash is stripped
    assert data["api_url"] == dead_backend["BEEBOT_API_URL"].rstrip("/")


def test_health_unreachable(dead_backend):
    result = run_cli("health", env=dead_backend)
    assert result.returncode == 1
    assert "Backend not reachable" in result.stderr


def test_chat_unreachable_prints_error_answer(dead_backend):
    """Test that a failed turn still prints an answer instead of a traceback."""
    result = run_cli("chat", "What did we decide?", env=dead_backend)
    assert result.returncode == 0
    assert "Sorry, I encountered an error" in result.stdout
    assert "Traceback" not in result.stderr


def test_chat_rejects_unknown_doc_type():
    result = run_cli("chat", "hi", "--doc-type", "spreadsheet")
    assert result.returncode == 2


def test_show_rejects_draft_id():
    result = run_cli("show", "new")
    assert result.returncode == 1
    assert "unsent draft" in result.stderr
    assert "Traceback" not in result.stderr


async def run_cli_against(server, *args: str) -> tuple[int, str, str]:
    """Run the CLI in a subprocess without blocking the event loop serving ``server``."""
    env = {
        **os.environ,
        "BEEBOT_API_URL": str(server.make_url("")),
        "BEEBOT_API_TOKEN": "cli-token",
    }
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "beebot.cli",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=60)
    return proc.returncode, stdout.decode(), stderr.decode()


@pytest.mark.asyncio
async def test_show_prints_transcript(server):
    code, out, err = await run_cli_against(server, "show", "c-1")
    assert code == 0, err
    assert "Roadmap" in out
    assert "When does the roadmap ship?" in out
    assert "(edited, 1 earlier versions)" in out
    assert "It ships in Q3." in out
    assert "Q3 planning" in out
    assert "(50%)" in out


@pytest.mark.asyncio
async def test_show_unknown_conversation(server):
    code, _, err = await run_cli_against(server, "show", "c-missing")
    assert code == 1
    assert "Not Found" in err


@pytest.mark.asyncio
async def test_documents_command(server):
    code, out, err = await run_cli_against(server, "documents", "--status", "failed")
    assert code == 0, err
    assert "d-2  scan.pdf  [failed]" in out
    assert "No text layer" in out
    assert "plan.pdf" not in out


@pytest.mark.asyncio
async def test_ghostwrite_command(server, backend):
    code, out, err = await run_cli_against(
        server, "ghostwrite", "Roadmap update", "--type", "email", "--tone", "formal"
    )
    assert code == 0, err
    assert "Dear team, the roadmap ships in Q3." in out
    assert "7 words, 1 sources" in out
    assert backend.requests[-1]["body"] == {
        "content_type": "email",
        "request": "Roadmap update",
        "tone": "formal",
    }


@pytest.mark.asyncio
async def test_infographic_command(server):
    code, out, err = await run_cli_against(server, "infographic", "Q3 summary", "--style", "modern")
    assert code == 0, err
    assert "Q3 at a glance" in out
    assert "3  launches" in out
    assert "- Ship the roadmap in Q3" in out
    assert "/infographic/ig-1/download" in out
