"""Domain models for the forum digest database layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Topic:
    id: int
    title: str


@dataclass(frozen=True)
class Post:
    """One forum post as fetched; ``cooked`` is Discourse's rendered HTML."""

    id: int
    topic_id: int
    username: str
    cooked: str
    created_at: datetime  # timezone-aware


@dataclass
class StoredSummary:
    topic_id: int
    summary: str  # Summary.to_json() text
    model: str
    prompt_hash: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    updated_at: datetime | None = None
    title: str = ""
