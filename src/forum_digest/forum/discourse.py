"""Discourse forum feed: latest topics and the first page of each topic's posts.

One ``httpx.AsyncClient`` is shared by every concurrent topic task; use the
client as an async context manager so the connection pool is closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from forum_digest.db.models import Post, Topic

logger = logging.getLogger(__name__)

_USER_AGENT = "forum-digest/0.1"


class FeedError(RuntimeError):
    """Raised when the forum cannot be fetched or returns an unexpected shape."""


@dataclass
class TopicPosts:
    topic: Topic
    posts: list[Post] = field(default_factory=list)


def build_post_url(base_url: str, topic_id: int, post_id: int) -> str:
    """Return the public URL of *post_id* inside *topic_id*."""
    return f"{base_url.rstrip('/')}/t/{topic_id}/{post_id}"


def parse_timestamp(value: str) -> datetime:
    """Parse a Discourse RFC 3339 timestamp into an aware UTC datetime."""
    ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class DiscourseClient:
    """Async reader for a Discourse forum's public JSON API.

    Args:
        base_url: Forum root, e.g. ``https://forum.zcashcommunity.com``.
        timeout:  HTTP timeout per request in seconds.
        client:   Pre-built client (tests); otherwise one is created on enter.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> DiscourseClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_latest(self) -> list[Topic]:
        """Return the topics listed on ``/latest.json``, in forum order."""
        data = await self._get_json("/latest.json")
        try:
            stubs = data["topic_list"]["topics"]
            return [Topic(id=int(t["id"]), title=str(t["title"])) for t in stubs]
        except (KeyError, TypeError, ValueError) as exc:
            raise FeedError(f"Unexpected /latest.json shape: {exc!r}") from exc

    async def fetch_topic(self, topic_id: int) -> TopicPosts:
        """Return topic metadata and the first page of its posts."""
        data = await self._get_json(f"/t/{topic_id}.json")
        try:
            topic = Topic(id=int(data["id"]), title=str(data["title"]))
            posts = [_parse_post(p, topic.id) for p in data["post_stream"]["posts"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise FeedError(f"Unexpected /t/{topic_id}.json shape: {exc!r}") from exc
        return TopicPosts(topic=topic, posts=posts)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_json(self, path: str) -> Any:
        if self._client is None:
            raise RuntimeError("DiscourseClient must be used as an async context manager.")
        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            logger.error("Forum request failed (%s): %s", type(exc).__name__, url)
            raise FeedError(f"Failed to fetch '{url}': {exc}") from exc
        except ValueError as exc:
            raise FeedError(f"Response from '{url}' is not JSON: {exc}") from exc


def _parse_post(raw: dict, topic_id: int) -> Post:
    return Post(
        id=int(raw["id"]),
        topic_id=int(raw.get("topic_id", topic_id)),
        username=str(raw.get("username", "")),
        cooked=str(raw.get("cooked") or ""),
        created_at=parse_timestamp(raw["created_at"]),
    )
