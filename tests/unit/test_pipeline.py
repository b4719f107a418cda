"""Tests for the per-topic pipeline and the concurrent run."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from forum_digest import pipeline
from forum_digest.config import DigestConfig
from forum_digest.db.models import Post, Topic
from forum_digest.db.repository import Repository
from forum_digest.forum.discourse import FeedError, TopicPosts
from forum_digest.llm.client import SummaryResult
from forum_digest.llm.errors import ClientError, TimeoutExceeded
from forum_digest.llm.fingerprint import prompt_hash
from forum_digest.llm.summary import Summary
from forum_digest.llm.tokenizer import Tokenizer

T0 = datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc)


class _CharTokenizer(Tokenizer):
    def count(self, text: str) -> int:
        return len(text)


class _FakeClient:
    """Stands in for SummarizationClient; records prompts it was asked for."""

    def __init__(self, summarize=None, model="ollama_chat/test"):
        self.model = model
        self.tokenizer = _CharTokenizer(model)
        self.summarize = summarize or AsyncMock(side_effect=self._default)
        self.prompts: list[str] = []

    async def _default(self, prompt):
        self.prompts.append(prompt)
        summary = Summary("Headline [post:1]", ["Fact [post:2] here"], ["[post:2]"])
        return SummaryResult(summary=summary, input_tokens=30, output_tokens=12, raw="{}")


class _FakeForum:
    def __init__(self, topics: dict[int, TopicPosts], fail: set[int] = frozenset()):
        self._topics = topics
        self._fail = fail
        self.active = 0
        self.peak = 0

    async def fetch_latest(self):
        return [tp.topic for tp in self._topics.values()]

    async def fetch_topic(self, topic_id):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            if topic_id in self._fail:
                raise FeedError(f"topic {topic_id} unavailable")
            return self._topics[topic_id]
        finally:
            self.active -= 1


def _topic_posts(topic_id=1, n=2, start=T0, title="Thread"):
    posts = [
        Post(
            id=topic_id * 100 + i,
            topic_id=topic_id,
            username="u",
            cooked=f"<p>Post {i} body</p>",
            created_at=start + timedelta(minutes=i),
        )
        for i in range(n)
    ]
    return TopicPosts(topic=Topic(topic_id, title), posts=posts)


def _cfg(**llm) -> DigestConfig:
    cfg = DigestConfig()
    cfg.llm.warmup = False
    for k, v in llm.items():
        setattr(cfg.llm, k, v)
    return cfg


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


# ---------------------------------------------------------------------------
# fit_prompt
# ---------------------------------------------------------------------------


def test_fit_prompt_full_budget_when_it_fits():
    tp = _topic_posts(n=3)
    fitted = pipeline.fit_prompt("Thread", tp.posts, 1800, 10_000, _CharTokenizer("m"))
    assert fitted.max_chars == 1800
    assert fitted.prompt.startswith("Thread: Thread\n\nContent excerpt:\n---\n[post:100 @ ")
    assert fitted.chunk.count("[post:") == 3


def test_fit_prompt_shrinks_until_under_token_limit():
    tp = _topic_posts(n=20)
    fitted = pipeline.fit_prompt("Thread", tp.posts, 1800, 400, _CharTokenizer("m"))
    assert fitted is not None
    assert len(fitted.prompt) <= 400
    assert fitted.max_chars < 1800
    assert len(fitted.chunk) <= fitted.max_chars


def test_fit_prompt_empty_posts():
    assert pipeline.fit_prompt("T", [], 1800, 100, _CharTokenizer("m")) is None


def test_fit_prompt_zero_budget():
    tp = _topic_posts(n=1)
    assert pipeline.fit_prompt("T", tp.posts, 0, 100, _CharTokenizer("m")) is None


# ---------------------------------------------------------------------------
# process_topic
# ---------------------------------------------------------------------------


def test_process_topic_summarizes_and_stores(repo):
    client = _FakeClient()
    outcome = asyncio.run(pipeline.process_topic(_topic_posts(), repo, client, _cfg()))

    assert outcome.status == pipeline.SUMMARIZED
    assert (outcome.input_tokens, outcome.output_tokens) == (30, 12)
    stored = repo.get_summary(1)
    data = json.loads(stored.summary)
    assert data["headline"] == "Headline"
    assert data["bullets"] == ["Fact here"]
    assert data["citations"] == ["[post:2]"]
    assert stored.prompt_hash == prompt_hash(1, "ollama_chat/test", client.prompts[0])
    assert stored.model == "ollama_chat/test"


def test_process_topic_unchanged_skips_llm(repo):
    client = _FakeClient()
    cfg = _cfg()
    asyncio.run(pipeline.process_topic(_topic_posts(), repo, client, cfg))
    outcome = asyncio.run(pipeline.process_topic(_topic_posts(), repo, client, cfg))
    assert outcome.status == pipeline.UNCHANGED
    assert client.summarize.await_count == 1


def test_process_topic_new_post_triggers_resummary(repo):
    client = _FakeClient()
    cfg = _cfg()
    asyncio.run(pipeline.process_topic(_topic_posts(n=1), repo, client, cfg))
    future = datetime.now(timezone.utc) + timedelta(days=1)
    later = _topic_posts(n=1)
    later.posts.append(
        Post(id=999, topic_id=1, username="u", cooked="<p>New reply</p>", created_at=future)
    )
    outcome = asyncio.run(pipeline.process_topic(later, repo, client, cfg))
    assert outcome.status == pipeline.SUMMARIZED
    assert "New reply" in client.prompts[-1]


def test_process_topic_same_prompt_reuses_summary(repo):
    client = _FakeClient()
    cfg = _cfg()
    asyncio.run(pipeline.process_topic(_topic_posts(n=1), repo, client, cfg))
    first = repo.get_summary(1)

    # A reply past the per-topic post cap leaves the excerpt unchanged.
    cfg.forum.max_posts_per_topic = 1
    later = _topic_posts(n=1)
    later.posts.append(
        Post(
            id=999,
            topic_id=1,
            username="u",
            cooked="<p>Late</p>",
            created_at=first.updated_at + timedelta(seconds=1),
        )
    )
    outcome = asyncio.run(pipeline.process_topic(later, repo, client, cfg))

    assert outcome.status == pipeline.CACHED
    assert client.summarize.await_count == 1
    stored = repo.get_summary(1)
    assert stored.summary == first.summary
    assert stored.updated_at > first.updated_at


def test_process_topic_without_text_is_empty(repo):
    tp = _topic_posts(n=1)
    tp.posts[0] = Post(id=1, topic_id=1, username="u", cooked="<script>x()</script>", created_at=T0)
    client = _FakeClient()
    outcome = asyncio.run(pipeline.process_topic(tp, repo, client, _cfg()))
    assert outcome.status == pipeline.EMPTY
    client.summarize.assert_not_awaited()
    assert repo.get_summary(1) is None


def test_process_topic_failure_keeps_previous_summary(repo):
    cfg = _cfg()
    asyncio.run(pipeline.process_topic(_topic_posts(n=1), repo, _FakeClient(), cfg))
    before = repo.get_summary(1)

    failing = _FakeClient(summarize=AsyncMock(side_effect=ClientError("http 404", status_code=404)))
    later = _topic_posts(n=1)
    later.posts.append(
        Post(id=5, topic_id=1, username="u", cooked="<p>More</p>", created_at=before.updated_at + timedelta(seconds=1))
    )
    outcome = asyncio.run(pipeline.process_topic(later, repo, failing, cfg))

    assert outcome.status == pipeline.FAILED
    assert "404" in outcome.error
    assert repo.get_summary(1) == before


def test_process_topic_timeout(repo):
    client = _FakeClient(summarize=AsyncMock(side_effect=TimeoutExceeded("too slow")))
    outcome = asyncio.run(pipeline.process_topic(_topic_posts(), repo, client, _cfg()))
    assert outcome.status == pipeline.TIMEOUT
    assert repo.get_summary(1) is None


# ---------------------------------------------------------------------------
# warmup and run
# ---------------------------------------------------------------------------


def test_warmup_failure_is_not_fatal():
    client = _FakeClient(summarize=AsyncMock(side_effect=ClientError("nope")))
    assert asyncio.run(pipeline.warmup(client)) is False


def test_warmup_success():
    assert asyncio.run(pipeline.warmup(_FakeClient())) is True


def test_run_processes_all_topics_and_isolates_failures(repo):
    topics = {i: _topic_posts(topic_id=i) for i in range(1, 5)}
    forum = _FakeForum(topics, fail={3})
    outcomes = asyncio.run(pipeline.run(_cfg(), repo, _FakeClient(), forum))

    assert [o.topic_id for o in outcomes] == [1, 2, 3, 4]
    by_id = {o.topic_id: o for o in outcomes}
    assert by_id[3].status == pipeline.FAILED
    assert "unavailable" in by_id[3].error
    for i in (1, 2, 4):
        assert by_id[i].status == pipeline.SUMMARIZED
        assert repo.get_summary(i) is not None


def test_run_respects_concurrency_limit(repo):
    topics = {i: _topic_posts(topic_id=i) for i in range(1, 9)}
    forum = _FakeForum(topics)
    cfg = _cfg()
    cfg.forum.topic_concurrency = 2
    asyncio.run(pipeline.run(cfg, repo, _FakeClient(), forum))
    assert 1 <= forum.peak <= 2


def test_run_limit_and_warmup(repo):
    topics = {i: _topic_posts(topic_id=i) for i in range(1, 4)}
    client = _FakeClient()
    cfg = _cfg(warmup=True)
    outcomes = asyncio.run(pipeline.run(cfg, repo, client, _FakeForum(topics), limit=2))
    assert [o.topic_id for o in outcomes] == [1, 2]
    # one warm-up call plus one per processed topic
    assert client.summarize.await_count == 3
    assert client.prompts[0].startswith("Thread: warmup")


def test_run_feed_error_propagates(repo):
    class _DownForum:
        async def fetch_latest(self):
            raise FeedError("down")

    with pytest.raises(FeedError):
        asyncio.run(pipeline.run(_cfg(), repo, _FakeClient(), _DownForum()))
