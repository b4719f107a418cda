"""Failure taxonomy for the summarization call.

``transient`` marks errors worth retrying inside the backoff envelope.
Permanent errors surface immediately so the caller can skip the topic.
"""

from __future__ import annotations


class SummarizationError(RuntimeError):
    """Base class for every failure of one summarization call."""

    transient: bool = False


class TransportError(SummarizationError):
    """Connection, send, or per-request timeout failure before a status arrived."""

    transient = True


class ServerError(SummarizationError):
    """HTTP 5xx or 429 from the backend."""

    transient = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClientError(SummarizationError):
    """Non-retryable HTTP 4xx (bad request, auth, unknown model)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(SummarizationError):
    """The response arrived but is not a valid summary payload."""


class TimeoutExceeded(SummarizationError):
    """The whole call, retries included, ran past the caller's ceiling."""
