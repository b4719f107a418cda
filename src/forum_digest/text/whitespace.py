"""Whitespace normalizer shared by the extractor and the output sanitizer."""

from __future__ import annotations

import re

# str.isspace() semantics: ASCII and Unicode whitespace, including NBSP.
_WS_RUN: re.Pattern[str] = re.compile(r"\s+")


def squeeze_whitespace(text: str, strip: bool = False) -> str:
    """Replace every run of whitespace in *text* with a single space.

    Args:
        text: Input text.
        strip: Also remove leading/trailing whitespace. Off by default so
            callers that need a boundary space keep it.

    Returns:
        The normalized text.
    """
    if strip:
        text = text.strip()
    return _WS_RUN.sub(" ", text)
