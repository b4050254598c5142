"""CLI interface for beebot."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

import click

from . import __version__
from .config import API_TOKEN, API_URL, DRAFT_CONVERSATION_ID
from .errors import ApiError, ConversationBusyError
from .schemas import DOC_TYPES, MEETING_CATEGORIES

T = TypeVar("T")


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning backend failures into CLI errors."""
    try:
        return asyncio.run(coro)
    except ApiError as exc:
        if exc.should_reauth:
            raise click.ClickException(
                "Authentication required. Set BEEBOT_API_TOKEN to a valid token."
            ) from exc
        raise click.ClickException(exc.message) from exc
    except ConversationBusyError as exc:
        raise click.ClickException(str(exc)) from exc


def _format_date(value: str | float | None) -> str:
    if value is None:
        return "Unknown date"
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
    return value


def _echo_message_details(message) -> None:
    """Print the metadata block shown under an assistant answer."""
    if message.tool_error:
        failed = f"  Tool {message.tool_name or ''} failed: {message.tool_error}"
        click.echo(click.style(failed, fg="red"))
    elif message.tool_result is not None:
        result = message.tool_result
        if result.structured_data is not None:
            click.echo(click.style(f"  {result.structured_data.headline}", bold=True))
            for stat in result.structured_data.stats:
                click.echo(f"    {stat.value}  {stat.label}")
            for point in result.structured_data.key_points:
                click.echo(f"    - {point}")
        if result.content:
            click.echo(result.content)
    if message.disclaimer:
        click.echo(click.style(f"  {message.disclaimer}", fg="yellow"))
    if message.confidence is not None:
        c = message.confidence
        click.echo(
            f"  Confidence: {c.level} (avg {c.avg_score * 100:.0f}%, {c.chunk_count} chunks)"
        )
    if message.timings is not None and message.timings.total_ms is not None:
        t = message.timings
        click.echo(
            f"  Timing: {t.total_ms:.0f} ms total "
            f"(retrieval {t.retrieval_ms or 0:.0f} ms, generation {t.generation_ms or 0:.0f} ms)"
        )
    if message.sources:
        click.echo(click.style("  Sources:", bold=True))
        for i, s in enumerate(message.sources, 1):
            score = f" ({s.relevance_score:.0f}%)" if s.relevance_score else ""
            click.echo(f"    [{i}] {s.title or 'Untitled'} — {_format_date(s.date)}{score}")


@click.group()
@click.version_option(version=__version__, prog_name="beebot")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool):
    """beebot — chat with your BeeBot knowledge assistant from the terminal.

    Answers stream in as they are generated, with the meetings and documents
    they were drawn from listed underneath.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.argument("query", required=False)
@click.option("--conversation", "conversation_id", help="Continue an existing conversation")
@click.option("--doc-type", type=click.Choice(DOC_TYPES), default="all", help="Restrict sources")
@click.option(
    "--category", type=click.Choice(MEETING_CATEGORIES), default="all", help="Meeting category"
)
@click.option("--document", "document_ids", multiple=True, help="Scope retrieval to a document")
def chat(
    query: str | None,
    conversation_id: str | None,
    doc_type: str,
    category: str,
    document_ids: tuple[str, ...],
):
    """Ask a question and stream the answer.

    Without QUERY, starts an interactive session; an empty line or
    "exit" ends it.

    Example:
        beebot chat "What did we decide about the Q3 roadmap?"
    """
    from .client import ApiClient
    from .session import ChatSession

    printed = 0
    tool_status: str | None = None

    def on_update(session: ChatSession) -> None:
        nonlocal printed, tool_status
        text = session.streaming_content
        if len(text) > printed:
            click.echo(text[printed:], nl=False)
            printed = len(text)
        tool = session.tool_state
        if tool.is_active and tool.status != tool_status:
            tool_status = tool.status
            detail = tool.message or tool.error or ""
            line = f"\n[{tool.tool_name}: {tool.status}] {detail}"
            click.echo(click.style(line, dim=True), err=True)

    async def ask(session: ChatSession, text: str) -> None:
        nonlocal printed, tool_status
        printed = 0
        tool_status = None
        message = await session.send_message(
            text,
            document_ids=list(document_ids) or None,
            doc_type=doc_type,
            meeting_category=category,
        )
        if printed == 0:
            click.echo(message.content, nl=False)
        click.echo()
        _echo_message_details(message)
        click.echo()

    async def main() -> None:
        async with ApiClient() as client:
            session = ChatSession(client, on_update=on_update)
            if conversation_id:
                await session.select_conversation(conversation_id)

            if query:
                await ask(session, query)
            else:
                while True:
                    try:
                        text = click.prompt(
                            click.style("you", fg="cyan"), default="", show_default=False
                        )
                    except click.Abort:
                        break
                    if not text.strip() or text.strip() == "exit":
                        break
                    await ask(session, text)

            if session.current_conversation is not None:
                click.echo(f"Conversation: {session.current_conversation_id}", err=True)

    _run(main())


@cli.command()
@click.option("--page", default=1, show_default=True)
@click.option("--page-size", default=20, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def conversations(page: int, page_size: int, as_json: bool):
    """List your conversations, most recent first."""
    from .client import ApiClient

    async def main():
        async with ApiClient() as client:
            return await client.get_conversations(page, page_size)

    listing = _run(main())
    if as_json:
        click.echo(listing.model_dump_json(indent=2))
        return
    if not listing.conversations:
        click.echo("No conversations yet.")
        return
    for conv in listing.conversations:
        click.echo(
            f"{conv.updated_at:%Y-%m-%d %H:%M}  {conv.id}  "
            f"{conv.title}  ({conv.message_count} messages)"
        )
    click.echo(f"Page {listing.page} of {listing.total_pages} ({listing.total} total)")


@cli.command()
@click.argument("conversation_id")
def show(conversation_id: str):
    """Print a conversation transcript."""
    if conversation_id == DRAFT_CONVERSATION_ID:
        raise click.ClickException(
            f"'{DRAFT_CONVERSATION_ID}' is the unsent draft, not a stored conversation"
        )
    from .client import ApiClient
    from .session import ChatSession

    async def main():
        async with ApiClient() as client:
            return await ChatSession(client).select_conversation(conversation_id)

    conv = _run(main())
    click.echo(click.style(conv.title, bold=True))
    click.echo()
    for msg in conv.messages:
        label = "You" if msg.role == "user" else "BeeBot"
        click.echo(click.style(f"{label}:", fg="cyan" if msg.role == "user" else "green"))
        click.echo(msg.content)
        if msg.paired_history:
            versions = len(msg.paired_history)
            click.echo(click.style(f"  (edited, {versions} earlier versions)", dim=True))
        if msg.role == "assistant":
            _echo_message_details(msg)
        click.echo()


@cli.command()
@click.argument("conversation_id")
@click.confirmation_option(prompt="Delete this conversation?")
def delete(conversation_id: str):
    """Delete a conversation."""
    from .client import ApiClient

    async def main():
        async with ApiClient() as client:
            await client.delete_conversation(conversation_id)

    _run(main())
    click.echo(f"Deleted {conversation_id}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", help="Document title")
@click.option("--description", help="Document description")
@click.option("--no-wait", is_flag=True, help="Return as soon as the upload is accepted")
def upload(path: Path, title: str | None, description: str | None, no_wait: bool):
    """Upload a PDF, DOCX or TXT file to the knowledge base."""
    from .client import ApiClient
    from .documents import wait_for_document_ready

    async def main():
        async with ApiClient() as client:
            accepted = await client.upload_document(path, title, description)
            click.echo(f"Uploaded {accepted.filename} ({accepted.id}): {accepted.status}")
            if no_wait:
                return None
            return await wait_for_document_ready(
                client,
                accepted.id,
                on_status_change=lambda status: click.echo(f"  status: {status}", err=True),
            )

    doc = _run(main())
    if doc is None:
        return
    if doc.status == "failed":
        raise click.ClickException(f"Processing failed: {doc.error_message or 'unknown error'}")
    click.echo(click.style("Ready!", fg="green", bold=True))
    click.echo(f"  Chunks: {doc.chunk_count}  Tokens: {doc.total_tokens}")


@cli.command()
@click.option("--status", type=click.Choice(["pending", "processing", "completed", "failed"]))
@click.option("--type", "file_type", type=click.Choice(["pdf", "docx", "txt"]))
@click.option("--limit", default=20, show_default=True)
def documents(status: str | None, file_type: str | None, limit: int):
    """List uploaded documents."""
    from .client import ApiClient

    async def main():
        async with ApiClient() as client:
            return await client.list_documents(limit=limit, status=status, file_type=file_type)

    listing = _run(main())
    if not listing.documents:
        click.echo("No documents.")
        return
    for doc in listing.documents:
        line = f"{doc.id}  {doc.filename}  [{doc.status}]"
        if doc.error_message:
            line += click.style(f"  {doc.error_message}", fg="red")
        click.echo(line)


@cli.command()
@click.argument("request")
@click.option(
    "--type",
    "content_type",
    type=click.Choice(
        ["linkedin_post", "email", "blog_draft", "tweet_thread", "newsletter", "meeting_summary"]
    ),
    default="email",
    show_default=True,
)
@click.option("--tone", type=click.Choice(["formal", "casual", "urgent", "inspirational"]))
@click.option("--topic", help="Topic used to find source material")
@click.option("--doc-type", type=click.Choice(DOC_TYPES), default="all")
def ghostwrite(request: str, content_type: str, tone: str | None, topic: str | None, doc_type: str):
    """Draft content grounded in your meetings and documents."""
    from .client import ApiClient
    from .schemas import GhostwriteRequest

    async def main():
        async with ApiClient() as client:
            return await client.generate_content(
                GhostwriteRequest(
                    content_type=content_type,
                    request=request,
                    topic=topic,
                    tone=tone,
                    doc_type=doc_type,
                )
            )

    result = _run(main())
    click.echo(result.content)
    click.echo()
    click.echo(f"  {result.word_count} words, {len(result.sources)} sources")


@cli.command()
@click.argument("request")
@click.option("--style", type=click.Choice(["modern", "corporate", "minimal", "vibrant", "dark"]))
@click.option("--topic", help="Topic used to find source material")
@click.option("--doc-type", type=click.Choice(DOC_TYPES), default="all")
def infographic(request: str, style: str | None, topic: str | None, doc_type: str):
    """Generate an infographic and print its structured content."""
    from .client import ApiClient
    from .schemas import InfographicRequest

    async def main():
        async with ApiClient() as client:
            result = await client.generate_infographic(
                InfographicRequest(request=request, style=style, topic=topic, doc_type=doc_type)
            )
            url = client.infographic_download_url(result.id) if result.id else None
            return result, url

    result, url = _run(main())
    if result.error_message:
        click.echo(click.style(f"Warning: {result.error_message}", fg="yellow"), err=True)
    data = result.structured_data
    click.echo(click.style(data.headline, bold=True))
    if data.subtitle:
        click.echo(data.subtitle)
    for stat in data.stats:
        click.echo(f"  {stat.value}  {stat.label}")
    for point in data.key_points:
        click.echo(f"  - {point}")
    if url:
        click.echo(f"Image: {url}")


@cli.command()
def health():
    """Check that the backend is reachable."""
    from .client import ApiClient

    async def main():
        async with ApiClient() as client:
            return await client.check_health()

    if _run(main()):
        click.echo(click.style("Backend is up", fg="green"))
    else:
        raise click.ClickException(f"Backend not reachable at {API_URL}")


@cli.command()
def config():
    """Print the active configuration."""
    click.echo(
        json.dumps(
            {"api_url": API_URL, "token_configured": API_TOKEN is not None},
            indent=2,
        )
    )


if __name__ == "__main__":
    cli()
