"""forum digest database layer."""

from forum_digest.db.connection import Database
from forum_digest.db.migrations import MIGRATIONS, run_migrations
from forum_digest.db.models import Post, StoredSummary, Topic
from forum_digest.db.repository import Repository
from forum_digest.db.schema import initialize

__all__ = [
    "Database",
    "MIGRATIONS",
    "Post",
    "Repository",
    "StoredSummary",
    "Topic",
    "initialize",
    "run_migrations",
]
