"""Discourse forum feed client."""

from forum_digest.forum.discourse import (
    DiscourseClient,
    FeedError,
    TopicPosts,
    build_post_url,
    parse_timestamp,
)

__all__ = ["DiscourseClient", "FeedError", "TopicPosts", "build_post_url", "parse_timestamp"]
