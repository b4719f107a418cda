"""Character-budgeted chunk assembly for bounded-context models.

All lengths here are counts of Unicode code points (``len()`` on ``str``),
never UTF-8 byte lengths, so a cut can never land inside a character.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from forum_digest.db.models import Post
from forum_digest.text.html import extract_text

_PROMPT_TEMPLATE = "Thread: {title}\n\nContent excerpt:\n---\n{body}\n---"


@dataclass(frozen=True)
class NormalizedLine:
    """Extracted text of one post plus the anchor used for citations."""

    post_id: int
    created_at: datetime
    text: str

    def render(self) -> str:
        return f"[post:{self.post_id} @ {format_rfc3339(self.created_at)}] {self.text}"


def format_rfc3339(ts: datetime) -> str:
    """Format *ts* as RFC 3339 in UTC with a ``Z`` suffix.

    Naive datetimes are taken to be UTC already.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def take_prefix_chars(text: str, max_chars: int) -> str:
    """Return at most the first *max_chars* characters of *text*."""
    if max_chars <= 0:
        return ""
    return text[:max_chars]


def make_chunk(lines: Sequence[str], max_chars: int) -> str:
    """Pack *lines* in order into one string of at most *max_chars* characters.

    Each whole line is followed by ``\\n``. The first line that does not fit
    (with its newline) is cut to the remaining budget and appended without a
    newline; everything after it is dropped. Empty lines are skipped.
    """
    parts: list[str] = []
    used = 0
    for line in lines:
        if not line:
            continue
        size = len(line)
        if used + size + 1 > max_chars:
            remain = max_chars - used
            if remain > 0:
                parts.append(take_prefix_chars(line, remain))
            break
        parts.append(line)
        parts.append("\n")
        used += size + 1
    return "".join(parts)


def normalize_posts(posts: Iterable[Post]) -> list[NormalizedLine]:
    """Extract every post body, oldest first; posts with no text are dropped."""
    ordered = sorted(posts, key=lambda p: (p.created_at, p.id))
    lines: list[NormalizedLine] = []
    for post in ordered:
        text = extract_text(post.cooked)
        if text:
            lines.append(NormalizedLine(post.id, post.created_at, text))
    return lines


def posts_to_chunk(posts: Iterable[Post], max_chars: int) -> str:
    """Normalize *posts* and pack their rendered lines into one chunk."""
    return make_chunk([line.render() for line in normalize_posts(posts)], max_chars)


def build_prompt(title: str, chunk: str) -> str:
    """Wrap *chunk* in the thread-excerpt prompt sent as the user message."""
    return _PROMPT_TEMPLATE.format(title=title, body=chunk)
