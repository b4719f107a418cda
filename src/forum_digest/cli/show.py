"""forum-digest show CLI commands.

Commands:
  forum-digest show latest [N]          newest N summaries
  forum-digest show id <topic_id>       one topic's summary
  forum-digest show search <query> [N]  search titles and summaries
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from forum_digest.cli.errors import err_no_db, err_no_summary
from forum_digest.cli.run import DEFAULT_DB
from forum_digest.db.connection import Database
from forum_digest.db.models import StoredSummary
from forum_digest.db.repository import Repository
from forum_digest.db.schema import initialize
from forum_digest.llm.errors import DecodeError
from forum_digest.llm.summary import Summary
from forum_digest.text.chunker import format_rfc3339

console = Console()

show_app = typer.Typer(
    name="show",
    help="Print stored topic summaries.",
    add_completion=False,
)

DbOption = Annotated[
    Path,
    typer.Option("--db", help="Path to the SQLite database."),
]


@show_app.command("latest")
def show_latest_cmd(
    n: Annotated[int, typer.Argument(min=1, help="How many summaries.")] = 10,
    db: DbOption = Path(DEFAULT_DB),
) -> None:
    """Show the most recently updated summaries."""
    for record in _repo_call(db, lambda repo: repo.latest_summaries(n)):
        _print_card(record)


@show_app.command("id")
def show_id_cmd(
    topic_id: Annotated[int, typer.Argument(help="Topic id.")],
    db: DbOption = Path(DEFAULT_DB),
) -> None:
    """Show the summary of one topic."""
    record = _repo_call(db, lambda repo: repo.get_summary(topic_id))
    if record is None:
        console.print(err_no_summary(topic_id))
        raise typer.Exit(1)
    _print_card(record)


@show_app.command("search")
def show_search_cmd(
    query: Annotated[str, typer.Argument(help="Text to look for.")],
    n: Annotated[int, typer.Argument(min=1, help="Maximum results.")] = 20,
    db: DbOption = Path(DEFAULT_DB),
) -> None:
    """Search topic titles and summaries (case-insensitive)."""
    records = _repo_call(db, lambda repo: repo.search_summaries(query, n))
    if not records:
        console.print(f"[yellow]No summaries match[/] '{escape(query)}'.")
    for record in records:
        _print_card(record)


def _repo_call(db: Path, fn):
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    with Database(db) as conn:
        initialize(conn)
        return fn(Repository(conn))


def _print_card(record: StoredSummary) -> None:
    when = format_rfc3339(record.updated_at) if record.updated_at else "unknown-time"
    label = escape(f"[{record.topic_id}]")
    console.print(
        f"[bold]{label}[/] {escape(record.title)}  ({escape(record.model)} • {when})",
        highlight=False,
    )
    try:
        summary = Summary.from_json(record.summary)
    except DecodeError:
        console.print(escape(record.summary.strip()), highlight=False)
    else:
        console.print(escape(summary.to_text()), highlight=False)
    console.print("---")
