"""Tests for forum-digest rich error messages."""

from __future__ import annotations

import pytest

from forum_digest.cli.errors import (
    err_config,
    err_feed_unreachable,
    err_no_api_key,
    err_no_db,
    err_no_summary,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "export ", "fix ", "set forum_digest"])


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("openai/gpt-4o", "Set the OPENAI_API_KEY environment variable."),
        err_no_db("forum-digest.db"),
        err_config("chunk.max_chars must be >= 0"),
        err_feed_unreachable("https://forum.example.org", "503"),
        err_no_summary(42),
    ],
)
def test_errors_are_actionable(msg):
    assert _has_action(msg)


def test_no_api_key_mentions_model_and_detail():
    msg = err_no_api_key("openai/gpt-4o", "Set the OPENAI_API_KEY environment variable.")
    assert "openai/gpt-4o" in msg
    assert "OPENAI_API_KEY" in msg


def test_feed_unreachable_mentions_url():
    assert "https://forum.example.org" in err_feed_unreachable("https://forum.example.org", "x")


def test_no_summary_mentions_topic():
    assert "42" in err_no_summary(42)
