"""forum-digest CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from forum_digest.cli.run import run_cmd
from forum_digest.cli.show import show_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("forum-digest")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"forum-digest {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="forum-digest",
    help=(
        "forum-digest: LLM summaries of forum threads.\n\n"
        "  forum-digest run   Fetch the latest topics and refresh changed summaries.\n"
        "  forum-digest show  Print stored summaries."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """forum-digest: LLM summaries of forum threads."""


app.command("run")(run_cmd)
app.add_typer(show_app, name="show")


@app.command("version")
def version_cmd() -> None:
    """Show the installed forum-digest version."""
    typer.echo(f"forum-digest {_installed_version()}")


if __name__ == "__main__":
    app()
