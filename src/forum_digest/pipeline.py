"""Per-topic digest pipeline and the concurrent run over the latest topics.

Per topic: store topic + posts → skip if unchanged since the last summary →
normalize posts (oldest first) → character-budgeted chunk → prompt →
fingerprint (skip the call if the same prompt was already summarized) →
resilient LLM call → strip echoed post anchors → store.

A failing topic is logged and reported in its TopicOutcome; it never stops
the other topics.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace

from forum_digest.config import DigestConfig
from forum_digest.db.models import Post, StoredSummary
from forum_digest.db.repository import Repository
from forum_digest.forum.discourse import DiscourseClient, TopicPosts
from forum_digest.llm.client import SummarizationClient
from forum_digest.llm.errors import SummarizationError, TimeoutExceeded
from forum_digest.llm.fingerprint import prompt_hash
from forum_digest.llm.tokenizer import Tokenizer
from forum_digest.text.chunker import build_prompt, make_chunk, normalize_posts

logger = logging.getLogger(__name__)

SUMMARIZED = "summarized"
UNCHANGED = "unchanged"
CACHED = "cached"
EMPTY = "empty"
FAILED = "failed"
TIMEOUT = "timeout"


@dataclass
class TopicOutcome:
    topic_id: int
    status: str
    input_tokens: int = 0
    output_tokens: int = 0
    error: str | None = None


@dataclass(frozen=True)
class FittedPrompt:
    chunk: str
    prompt: str
    max_chars: int


def fit_prompt(
    title: str,
    posts: list[Post],
    max_chars: int,
    max_input_tokens: int,
    tokenizer: Tokenizer,
) -> FittedPrompt | None:
    """Chunk *posts* and build the prompt, shrinking the excerpt until it fits.

    The character budget drops by a quarter each round while the prompt is
    over *max_input_tokens*. Returns None when there is nothing to send.
    """
    lines = [line.render() for line in normalize_posts(posts)]
    budget = max_chars
    while lines:
        chunk = make_chunk(lines, budget)
        if not chunk:
            return None
        prompt = build_prompt(title, chunk)
        if tokenizer.count(prompt) <= max_input_tokens:
            return FittedPrompt(chunk=chunk, prompt=prompt, max_chars=budget)
        budget = budget * 3 // 4
    return None


async def process_topic(
    topic_posts: TopicPosts,
    repo: Repository,
    client: SummarizationClient,
    cfg: DigestConfig,
) -> TopicOutcome:
    """Store one topic's posts and refresh its summary when needed."""
    topic = topic_posts.topic
    repo.upsert_topic(topic)
    repo.upsert_posts(topic_posts.posts)

    if not repo.posts_changed_since_last_summary(topic.id):
        logger.info("Topic %s unchanged since last LLM summary, skipping", topic.id)
        return TopicOutcome(topic.id, UNCHANGED)

    posts = repo.list_posts(topic.id, limit=cfg.forum.max_posts_per_topic)
    fitted = fit_prompt(
        topic.title,
        posts,
        cfg.chunk.max_chars,
        cfg.llm.max_input_tokens,
        client.tokenizer,
    )
    if fitted is None:
        return TopicOutcome(topic.id, EMPTY)

    phash = prompt_hash(topic.id, client.model, fitted.prompt)
    existing = repo.get_summary(topic.id)
    if existing is not None and existing.prompt_hash == phash:
        # New posts fell outside the excerpt; restamp so the guard settles.
        repo.save_summary(replace(existing, updated_at=None))
        logger.info("Topic %s prompt unchanged (%s), reusing summary", topic.id, phash[:12])
        return TopicOutcome(topic.id, CACHED)

    started = time.monotonic()
    try:
        result = await client.summarize(fitted.prompt)
    except TimeoutExceeded as exc:
        logger.warning("LLM summarize timed out for topic %s: %s", topic.id, exc)
        return TopicOutcome(topic.id, TIMEOUT, error=str(exc))
    except SummarizationError as exc:
        logger.warning(
            "LLM summarize failed for topic %s (%s): %s", topic.id, type(exc).__name__, exc
        )
        return TopicOutcome(topic.id, FAILED, error=str(exc))

    summary = result.summary.sanitized()
    repo.save_summary(
        StoredSummary(
            topic_id=topic.id,
            summary=summary.to_json(),
            model=client.model,
            prompt_hash=phash,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
    )
    logger.info(
        "LLM summarized topic %s in %.1fs (%d in / %d out tokens)",
        topic.id,
        time.monotonic() - started,
        result.input_tokens,
        result.output_tokens,
    )
    return TopicOutcome(topic.id, SUMMARIZED, result.input_tokens, result.output_tokens)


async def warmup(client: SummarizationClient) -> bool:
    """Send one throwaway request so a local model is loaded before the run."""
    try:
        await client.summarize(build_prompt("warmup", "warmup"))
    except SummarizationError as exc:
        logger.warning("Warm-up summarize failed: %s", exc)
        return False
    return True


async def run(
    cfg: DigestConfig,
    repo: Repository,
    client: SummarizationClient,
    forum: DiscourseClient,
    limit: int | None = None,
) -> list[TopicOutcome]:
    """Fetch the latest topics and process them with bounded concurrency.

    Args:
        cfg:    Loaded configuration.
        repo:   Open repository.
        client: Summarization client.
        forum:  Entered DiscourseClient.
        limit:  Only process the first *limit* latest topics.

    Returns:
        One TopicOutcome per topic, in feed order.
    """
    if cfg.llm.warmup:
        await warmup(client)

    topics = await forum.fetch_latest()
    if limit is not None:
        topics = topics[:limit]
    logger.info("Fetched %d topics", len(topics))

    semaphore = asyncio.Semaphore(cfg.forum.topic_concurrency)

    async def _one(topic_id: int) -> TopicOutcome:
        async with semaphore:
            try:
                topic_posts = await forum.fetch_topic(topic_id)
                logger.info("Topic %s → %d posts", topic_id, len(topic_posts.posts))
                return await process_topic(topic_posts, repo, client, cfg)
            except Exception as exc:
                logger.warning("Topic %s processing failed: %s", topic_id, exc, exc_info=True)
                return TopicOutcome(topic_id, FAILED, error=str(exc))

    return list(await asyncio.gather(*(_one(t.id) for t in topics)))
