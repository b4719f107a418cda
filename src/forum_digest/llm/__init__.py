"""LLM side of the digest: tokenizer, cache key, summary model, resilient client."""

from forum_digest.llm.client import (
    SummarizationClient,
    SummaryResult,
    classify_error,
    validate_api_key,
)
from forum_digest.llm.errors import (
    ClientError,
    DecodeError,
    ServerError,
    SummarizationError,
    TimeoutExceeded,
    TransportError,
)
from forum_digest.llm.fingerprint import prompt_hash
from forum_digest.llm.summary import Summary
from forum_digest.llm.tokenizer import Tokenizer

__all__ = [
    "ClientError",
    "DecodeError",
    "ServerError",
    "SummarizationClient",
    "SummarizationError",
    "Summary",
    "SummaryResult",
    "TimeoutExceeded",
    "Tokenizer",
    "TransportError",
    "classify_error",
    "prompt_hash",
    "validate_api_key",
]
