"""Forward-only migration runner for the forum digest schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# Timestamps are fixed-width UTC ISO-8601 text (see repository.to_db_time),
# so MAX() and comparisons on the raw column follow time order.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS topics (
    id      INTEGER PRIMARY KEY,
    title   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS posts (
    id          INTEGER PRIMARY KEY,
    topic_id    INTEGER NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
    username    TEXT NOT NULL,
    cooked      TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS posts_topic_created_idx ON posts(topic_id, created_at);
"""

_V2_SQL = """
CREATE TABLE IF NOT EXISTS topic_summaries_llm (
    topic_id        INTEGER PRIMARY KEY REFERENCES topics(id) ON DELETE CASCADE,
    summary         TEXT NOT NULL,
    model           TEXT NOT NULL,
    prompt_hash     TEXT NOT NULL,
    input_tokens    INTEGER,
    output_tokens   INTEGER,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS topic_summaries_llm_updated_idx
    ON topic_summaries_llm(updated_at DESC);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def current_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
