"""forum-digest run: fetch the latest topics and refresh their LLM summaries."""

from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from forum_digest.cli.errors import err_config, err_feed_unreachable, err_no_api_key
from forum_digest.cli.logs import configure_logging
from forum_digest.config import ConfigError, DigestConfig, load_config
from forum_digest.db.connection import Database
from forum_digest.db.repository import Repository
from forum_digest.db.schema import initialize
from forum_digest.forum.discourse import DiscourseClient, FeedError
from forum_digest.llm.client import SummarizationClient, validate_api_key
from forum_digest.llm.tokenizer import Tokenizer
from forum_digest.pipeline import TopicOutcome, run

console = Console()

DEFAULT_DB = "forum-digest.db"


def run_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the SQLite database (created if missing)."),
    ] = Path(DEFAULT_DB),
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Only process the first N latest topics."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="LiteLLM model string (overrides config)."),
    ] = None,
    max_chars: Annotated[
        int | None,
        typer.Option("--max-chars", min=0, help="Excerpt character budget per topic."),
    ] = None,
    no_warmup: Annotated[
        bool,
        typer.Option("--no-warmup", help="Skip the model warm-up request."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """Summarize the forum's latest topics that changed since their last summary."""
    configure_logging(verbose)

    try:
        cfg = load_config(project_dir=db.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    if model:
        cfg.llm.model = model
    if max_chars is not None:
        cfg.chunk.max_chars = max_chars
    if no_warmup:
        cfg.llm.warmup = False

    try:
        validate_api_key(cfg.llm.model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(cfg.llm.model, str(exc)))
        raise typer.Exit(1)

    db.parent.mkdir(parents=True, exist_ok=True)
    conn = Database(db).connect()
    initialize(conn)
    try:
        outcomes = asyncio.run(_run(cfg, Repository(conn), limit))
    except FeedError as exc:
        console.print(err_feed_unreachable(cfg.forum.base_url, str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    _print_report(outcomes)


async def _run(
    cfg: DigestConfig, repo: Repository, limit: int | None
) -> list[TopicOutcome]:
    client = SummarizationClient(cfg.llm, Tokenizer(cfg.llm.model))
    async with DiscourseClient(
        cfg.forum.base_url, timeout=cfg.forum.request_timeout_secs
    ) as forum:
        return await run(cfg, repo, client, forum, limit=limit)


def _print_report(outcomes: list[TopicOutcome]) -> None:
    if not outcomes:
        console.print("[yellow]No topics in the feed.[/]")
        return

    counts = Counter(o.status for o in outcomes)
    table = Table(title="Digest run", show_header=True, header_style="bold")
    table.add_column("Status", style="bold")
    table.add_column("Topics", justify="right")
    for status, n in sorted(counts.items()):
        table.add_row(status, str(n))
    console.print(table)

    in_tok = sum(o.input_tokens for o in outcomes)
    out_tok = sum(o.output_tokens for o in outcomes)
    console.print(f"\n  Tokens: {in_tok} in / {out_tok} out")

    for o in outcomes:
        if o.error:
            console.print(f"  [yellow]⚠[/] topic {o.topic_id} {o.status}: {o.error}")
