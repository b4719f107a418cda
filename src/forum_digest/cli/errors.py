"""Rich error messages for the forum-digest CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it
"""

from __future__ import annotations


def err_no_api_key(model: str, detail: str) -> str:
    """Hosted model selected but its API key is not exported."""
    return (
        f"[red]Error:[/] Cannot use model '{model}'.\n"
        f"  {detail}\n"
        "  Or switch to a local model:  export LLM_MODEL=ollama_chat/qwen2.5:latest"
    )


def err_no_db(db_path: str) -> str:
    """No database yet, so nothing to show."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  forum-digest run"
    )


def err_config(detail: str) -> str:
    """Config file or environment value rejected."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix forum-digest.yaml (or the environment variable) and retry."
    )


def err_feed_unreachable(base_url: str, detail: str) -> str:
    """The forum's /latest.json could not be fetched."""
    return (
        f"[red]Error:[/] Could not read the topic list from '{base_url}'.\n"
        f"  {detail}\n"
        "  Check the network or set FORUM_DIGEST_FORUM_URL to a reachable forum."
    )


def err_no_summary(topic_id: int) -> str:
    return (
        f"[yellow]No summary for topic {topic_id}.[/]\n"
        "  Run:  forum-digest run  to summarize the latest topics."
    )
