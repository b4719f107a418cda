"""Repository pattern for all forum digest database operations.

Single interface for: topics, posts, and LLM topic summaries. Also answers
the incremental guard's question "has this topic changed since its summary?".
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone

from forum_digest.db.models import Post, StoredSummary, Topic
from forum_digest.guard import needs_reprocessing

_DB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

_SUMMARY_COLUMNS = """
    l.topic_id, t.title, l.summary, l.model, l.prompt_hash,
    l.input_tokens, l.output_tokens, l.updated_at
"""


def to_db_time(ts: datetime) -> str:
    """Fixed-width UTC text so lexical order equals time order. Naive means UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(_DB_TIME_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class Repository:
    """Data access layer for topics, posts, and summaries.

    Wraps an open sqlite3.Connection; the connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see forum_digest.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def upsert_topic(self, topic: Topic) -> None:
        self._conn.execute(
            """
            INSERT INTO topics (id, title) VALUES (?, ?)
            ON CONFLICT(id) DO UPDATE SET title = excluded.title
            """,
            (topic.id, topic.title),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def upsert_posts(self, posts: Iterable[Post]) -> int:
        """Insert or refresh *posts* in one transaction. Returns the row count."""
        rows = [
            (p.id, p.topic_id, p.username, p.cooked, to_db_time(p.created_at))
            for p in posts
        ]
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO posts (id, topic_id, username, cooked, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    topic_id = excluded.topic_id,
                    username = excluded.username,
                    cooked = excluded.cooked,
                    created_at = excluded.created_at
                """,
                rows,
            )
        return len(rows)

    def list_posts(
        self, topic_id: int, limit: int, before: datetime | None = None
    ) -> list[Post]:
        """Return up to *limit* posts of *topic_id*, oldest first.

        Args:
            topic_id: Topic to read.
            limit: Maximum number of posts.
            before: Only posts created strictly before this instant.
        """
        sql = "SELECT id, topic_id, username, cooked, created_at FROM posts WHERE topic_id = ?"
        params: list = [topic_id]
        if before is not None:
            sql += " AND created_at < ?"
            params.append(to_db_time(before))
        sql += " ORDER BY created_at ASC, id ASC LIMIT ?"
        params.append(limit)
        return [_row_to_post(r) for r in self._conn.execute(sql, params).fetchall()]

    def latest_post_time(self, topic_id: int) -> datetime | None:
        row = self._conn.execute(
            "SELECT MAX(created_at) FROM posts WHERE topic_id = ?", (topic_id,)
        ).fetchone()
        return from_db_time(row[0])

    # ------------------------------------------------------------------
    # LLM summaries
    # ------------------------------------------------------------------

    def save_summary(self, record: StoredSummary) -> None:
        """Upsert the summary for ``record.topic_id`` and stamp ``updated_at``.

        ``record.updated_at`` defaults to now (UTC) when unset.
        """
        updated_at = record.updated_at or datetime.now(timezone.utc)
        self._conn.execute(
            """
            INSERT INTO topic_summaries_llm
                (topic_id, summary, model, prompt_hash, input_tokens, output_tokens, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(topic_id) DO UPDATE SET
                summary = excluded.summary,
                model = excluded.model,
                prompt_hash = excluded.prompt_hash,
                input_tokens = excluded.input_tokens,
                output_tokens = excluded.output_tokens,
                updated_at = excluded.updated_at
            """,
            (
                record.topic_id,
                record.summary,
                record.model,
                record.prompt_hash,
                record.input_tokens,
                record.output_tokens,
                to_db_time(updated_at),
            ),
        )
        self._conn.commit()

    def get_summary(self, topic_id: int) -> StoredSummary | None:
        row = self._conn.execute(
            f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM topic_summaries_llm l LEFT JOIN topics t ON t.id = l.topic_id
            WHERE l.topic_id = ?
            """,
            (topic_id,),
        ).fetchone()
        return _row_to_summary(row) if row else None

    def last_summary_time(self, topic_id: int) -> datetime | None:
        row = self._conn.execute(
            "SELECT updated_at FROM topic_summaries_llm WHERE topic_id = ?", (topic_id,)
        ).fetchone()
        return from_db_time(row["updated_at"]) if row else None

    def latest_summaries(self, limit: int = 10) -> list[StoredSummary]:
        """Return the *limit* most recently updated summaries, newest first."""
        rows = self._conn.execute(
            f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM topic_summaries_llm l LEFT JOIN topics t ON t.id = l.topic_id
            ORDER BY l.updated_at DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_row_to_summary(r) for r in rows]

    def search_summaries(self, query: str, limit: int = 20) -> list[StoredSummary]:
        """Case-insensitive substring search over topic titles and summary text."""
        pattern = f"%{_escape_like(query)}%"
        rows = self._conn.execute(
            f"""
            SELECT {_SUMMARY_COLUMNS}
            FROM topic_summaries_llm l LEFT JOIN topics t ON t.id = l.topic_id
            WHERE l.summary LIKE ? ESCAPE '\\' OR t.title LIKE ? ESCAPE '\\'
            ORDER BY l.updated_at DESC
            LIMIT ?
            """,
            (pattern, pattern, limit),
        ).fetchall()
        return [_row_to_summary(r) for r in rows]

    def posts_changed_since_last_summary(self, topic_id: int) -> bool:
        """True when *topic_id* has posts newer than its stored summary."""
        return needs_reprocessing(
            self.latest_post_time(topic_id), self.last_summary_time(topic_id)
        )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_post(row: sqlite3.Row) -> Post:
    return Post(
        id=row["id"],
        topic_id=row["topic_id"],
        username=row["username"],
        cooked=row["cooked"],
        created_at=from_db_time(row["created_at"]),
    )


def _row_to_summary(row: sqlite3.Row) -> StoredSummary:
    return StoredSummary(
        topic_id=row["topic_id"],
        title=row["title"] or "",
        summary=row["summary"],
        model=row["model"],
        prompt_hash=row["prompt_hash"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        updated_at=from_db_time(row["updated_at"]),
    )
