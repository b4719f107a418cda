"""Text preparation: HTML extraction, whitespace, chunking, output sanitizing."""

from forum_digest.text.chunker import (
    NormalizedLine,
    build_prompt,
    make_chunk,
    normalize_posts,
    posts_to_chunk,
    take_prefix_chars,
)
from forum_digest.text.html import extract_text
from forum_digest.text.sanitize import strip_post_tags
from forum_digest.text.whitespace import squeeze_whitespace

__all__ = [
    "NormalizedLine",
    "build_prompt",
    "extract_text",
    "make_chunk",
    "normalize_posts",
    "posts_to_chunk",
    "squeeze_whitespace",
    "strip_post_tags",
    "take_prefix_chars",
]
