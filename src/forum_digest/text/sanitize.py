"""Strip echoed ``[post:<id> ...]`` anchors from model output."""

from __future__ import annotations

import re

from forum_digest.text.whitespace import squeeze_whitespace

# "[post:" + digits + optional annotation (e.g. " @ 2024-01-01T00:00:00Z") + "]"
POST_TAG: re.Pattern[str] = re.compile(r"\[post:\d+(?:[^\]\[]*)\]")


def strip_post_tags(text: str) -> str:
    """Remove post anchors from *text*, then tidy each line.

    Every line is whitespace-squeezed and right-trimmed; lines are rejoined
    with single newlines. A trailing newline in the input is not kept.
    Only exact anchor matches are removed.
    """
    cleaned = POST_TAG.sub("", text).replace("\r\n", "\n")
    if cleaned.endswith("\n"):
        cleaned = cleaned[:-1]
    return "\n".join(squeeze_whitespace(line).rstrip() for line in cleaned.split("\n"))
