"""
CLI interface for brainly.

Usage:
    brainly search "that video about react hooks"
    brainly list --kind youtube
    brainly add https://youtu.be/abc123 --title "Hooks talk"
    brainly del 65f1c0ffee
"""

import asyncio
import json
import os
import sys
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import get_config_dir, get_log_dir, load_config, save_config
from .errors import BrainlyError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .notify import Notification, NotificationKind
from .search import ERROR_NETWORK, SearchOutcome
from .session import BrainSession
from .types import Content, ContentKind, detect_content_kind


# Configure quiet mode by default (suppress verbose library output)
# Set BRAINLY_VERBOSE=1 to enable debug mode via environment
if os.environ.get("BRAINLY_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"brainly {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


app = typer.Typer(
    name="brainly",
    help="Search and manage your second brain.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Search and manage your second brain."""


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _format_content_line(content: Content) -> str:
    """One line per item: id, kind, date, title [status]."""
    date = (content.updated_at or content.created_at)[:10]
    title = content.title or content.link or content.body[:60]
    line = f"{content.id}  {content.kind.value:<8} {date:<10}  {title}"
    if content.score is not None:
        line += f"  ({content.score:.2f})"
    if content.is_transient:
        line += f"  [{content.status.value}]"
    return line


def _format_outcome(outcome: SearchOutcome) -> str:
    if _get_json_output():
        return json.dumps({
            "query": outcome.query,
            "summary": outcome.summary,
            "results": [c.to_dict() for c in outcome.results],
            "result_count": outcome.result_count,
            "latency_ms": outcome.latency_ms,
            "from_cache": outcome.from_cache,
            "error": outcome.error,
        }, indent=2)
    lines = []
    if outcome.summary:
        lines.extend([outcome.summary, ""])
    lines.extend(_format_content_line(c) for c in outcome.results)
    lines.append(f"\n{outcome.result_count} result(s) in {outcome.latency_ms}ms")
    return "\n".join(lines)


def _echo_notification(note: Notification) -> None:
    """Errors go to stderr; progress chatter is suppressed unless verbose."""
    if note.kind == NotificationKind.ERROR:
        typer.echo(note.message, err=True)


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------

def _get_session() -> BrainSession:
    """Build a session from config, handling errors gracefully."""
    try:
        config = load_config()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if not config.token:
        typer.echo(
            "Error: not signed in. Set BRAINLY_TOKEN or run: brainly config --token <token>",
            err=True,
        )
        raise typer.Exit(1)
    try:
        session = BrainSession.from_config(config, log_dir=get_log_dir())
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    session.notifier.subscribe(_echo_notification)
    return session


def _run(coro, context: str):
    """Run a command coroutine, turning library errors into exit codes."""
    try:
        return asyncio.run(coro)
    except BrainlyError as e:
        log_path = log_exception(e, context)
        typer.echo(f"Error: {e} (details: {log_path})", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[str, typer.Argument(help="What to look for in your saved content")],
):
    """
    Ask a question about your saved content.

    \b
    Examples:
        brainly search "that video about react hooks"
        brainly --json search "productivity tweet"
    """
    if not query.strip():
        typer.echo("Error: Specify a query", err=True)
        raise typer.Exit(1)

    async def _search() -> Optional[SearchOutcome]:
        async with _get_session() as session:
            return await session.search(query)

    outcome = _run(_search(), "search")
    if outcome is None:
        raise typer.Exit(1)
    typer.echo(_format_outcome(outcome))
    if outcome.error == ERROR_NETWORK:
        raise typer.Exit(1)


@app.command("list")
def list_cmd(
    kind: Annotated[Optional[ContentKind], typer.Option(
        "--kind", "-k",
        help="Only show one kind of content",
    )] = None,
):
    """List saved content."""
    async def _list() -> list[Content]:
        async with _get_session() as session:
            await session.load()
            return session.store.filter(kind)

    contents = _run(_list(), "list")
    if _get_json_output():
        typer.echo(json.dumps([c.to_dict() for c in contents], indent=2))
        return
    for content in contents:
        typer.echo(_format_content_line(content))


@app.command()
def add(
    url: Annotated[Optional[str], typer.Argument(help="URL to bookmark (kind is detected)")] = None,
    title: Annotated[str, typer.Option("--title", help="Title")] = "",
    body: Annotated[str, typer.Option("--body", "-b", help="Note text")] = "",
    kind: Annotated[Optional[ContentKind], typer.Option(
        "--kind", "-k",
        help="Content kind (default: detected from URL, or note)",
    )] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Tag (repeatable)",
    )] = None,
    due: Annotated[str, typer.Option("--due", help="Due date for reminders (ISO)")] = "",
):
    """
    Save a link, note or reminder.

    \b
    Examples:
        brainly add https://youtu.be/abc123 --title "Hooks talk"
        brainly add --title "Idea" --body "Index notes by intent"
        brainly add --kind reminder --title "Renew passport" --due 2026-11-01
    """
    if kind is None:
        if url:
            kind = detect_content_kind(url)
            if kind is None:
                typer.echo(f"Error: not a valid http(s) URL: {url}", err=True)
                raise typer.Exit(1)
        else:
            kind = ContentKind.NOTE
    if kind.is_link and not url:
        typer.echo(f"Error: {kind.value} content needs a URL", err=True)
        raise typer.Exit(1)
    if not kind.is_link and not (title or body):
        typer.echo("Error: Specify --title or --body", err=True)
        raise typer.Exit(1)

    async def _add() -> Content:
        async with _get_session() as session:
            return await session.create_content(
                kind, title=title, body=body, link=url or "", tags=tag, due_date=due,
            )

    content = _run(_add(), "add")
    if _get_json_output():
        typer.echo(json.dumps(content.to_dict(), indent=2))
    else:
        typer.echo(_format_content_line(content))


@app.command()
def update(
    id: Annotated[str, typer.Argument(help="ID of the item to update")],
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    body: Annotated[Optional[str], typer.Option("--body", "-b", help="New text")] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Replace tags (repeatable)",
    )] = None,
):
    """Update the title, text or tags of an item."""
    changes = {}
    if title is not None:
        changes["title"] = title
    if body is not None:
        changes["body"] = body
    if tag is not None:
        changes["tags"] = tuple(tag)
    if not changes:
        typer.echo("Error: nothing to update (use --title, --body or --tag)", err=True)
        raise typer.Exit(1)

    async def _update() -> Content:
        async with _get_session() as session:
            await session.load()
            return await session.update_content(id, **changes)

    content = _run(_update(), "update")
    if _get_json_output():
        typer.echo(json.dumps(content.to_dict(), indent=2))
    else:
        typer.echo(_format_content_line(content))


@app.command("del")
def del_cmd(
    id: Annotated[list[str], typer.Argument(help="ID(s) of item(s) to delete")],
):
    """
    Delete saved item(s).

    \b
    Examples:
        brainly del 65f1c0ffee
        brainly del 65f1c0ffee 65f1beef01
    """
    async def _delete() -> list[str]:
        failed = []
        async with _get_session() as session:
            for one_id in id:
                try:
                    await session.delete_content(one_id)
                except BrainlyError:
                    failed.append(one_id)
        return failed

    failed = _run(_delete(), "del")
    for one_id in id:
        if one_id not in failed:
            typer.echo(f"Deleted {one_id}")
    if failed:
        raise typer.Exit(1)


@app.command()
def watch(
    timeout: Annotated[float, typer.Option(
        "--timeout",
        help="Give up after this many seconds",
    )] = 300.0,
):
    """
    Wait until server-side processing of saved items has finished.

    Polls while anything is pending or processing, then lists the result.
    """
    async def _watch() -> tuple[list[Content], bool]:
        async with _get_session() as session:
            await session.load()
            done = asyncio.Event()

            def check(store) -> None:
                if not store.has_transient():
                    done.set()

            session.store.subscribe(check)
            check(session.store)
            transient = [c for c in session.store if c.is_transient]
            if transient:
                typer.echo(f"Waiting for {len(transient)} item(s) to finish processing...", err=True)
            try:
                await asyncio.wait_for(done.wait(), timeout)
            except asyncio.TimeoutError:
                return session.store.contents(), False
            return session.store.contents(), True

    contents, finished = _run(_watch(), "watch")
    for content in contents:
        typer.echo(_format_content_line(content))
    if not finished:
        typer.echo("Timed out waiting for processing", err=True)
        raise typer.Exit(1)


@app.command()
def config(
    api_url: Annotated[Optional[str], typer.Option("--api-url", help="Set the API URL")] = None,
    token: Annotated[Optional[str], typer.Option("--token", help="Set the API token")] = None,
):
    """Show or change configuration."""
    try:
        cfg = load_config()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if api_url is not None or token is not None:
        if api_url is not None:
            cfg.api_url = api_url
        if token is not None:
            cfg.token = token
        path = save_config(cfg)
        typer.echo(f"Saved {path}")

    shown = cfg.to_dict()
    if "token" in shown["client"]:
        shown["client"]["token"] = "****"
    if _get_json_output():
        typer.echo(json.dumps(shown, indent=2))
        return
    typer.echo(f"config dir: {get_config_dir()}")
    for section, values in shown.items():
        for key, value in values.items():
            typer.echo(f"{section}.{key} = {value}")


def main():
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
