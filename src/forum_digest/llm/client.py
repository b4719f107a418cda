"""Resilient summarization client: one LiteLLM chat call inside a retry envelope.

LiteLLM's own retries are disabled (num_retries=0); backoff is owned here:
- exponential backoff with jitter (tenacity), capped by total elapsed time,
- only transient failures are retried (transport, 5xx, 429), plus decode
  failures when ``retry_on_decode_error`` is set,
- an outer ``asyncio.wait_for`` ceiling bounds the whole call, retries included.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

import litellm
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_delay,
    wait_exponential_jitter,
)

from forum_digest.config import LlmCfg
from forum_digest.llm.errors import (
    ClientError,
    DecodeError,
    ServerError,
    SummarizationError,
    TimeoutExceeded,
    TransportError,
)
from forum_digest.llm.summary import Summary
from forum_digest.llm.tokenizer import Tokenizer

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are summarizing ONE forum thread excerpt. Every excerpt line starts with an \
anchor such as [post:123 @ 2024-01-01T00:00:00Z].
Reply with a single JSON object and nothing else:
{"headline": "<one-line headline>", "bullets": ["<key fact>", ...], "citations": ["[post:<id>]", ...]}
- Give 3 to 6 bullets, most important first.
- citations[i] names the post that supports bullets[i]; use "" when none does.
- Do NOT put post anchors, timestamps, author names, or URLs in the headline or bullets."""

# Provider → env var mapping for API key validation
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
    "hosted_vllm": None,
}


@dataclass(frozen=True)
class SummaryResult:
    summary: Summary
    input_tokens: int
    output_tokens: int
    raw: str


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def classify_error(exc: BaseException) -> SummarizationError:
    """Map a backend exception onto the summarization failure taxonomy."""
    if isinstance(exc, SummarizationError):
        return exc
    if isinstance(exc, (litellm.exceptions.Timeout, litellm.exceptions.APIConnectionError)):
        return TransportError(f"transport: {exc}")

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status == 429 or status >= 500:
            return ServerError(f"http {status}: {exc}", status_code=status)
        if 400 <= status < 500:
            return ClientError(f"http {status}: {exc}", status_code=status)
    return TransportError(f"transport: {type(exc).__name__}: {exc}")


class SummarizationClient:
    """Summarize one prompt per call; safe to share across concurrent tasks.

    Args:
        cfg:       LLM section of the configuration (model, endpoint, envelope).
        tokenizer: Shared tokenizer; built from ``cfg.model`` when omitted.
    """

    def __init__(self, cfg: LlmCfg, tokenizer: Tokenizer | None = None) -> None:
        self._cfg = cfg
        self._tokenizer = tokenizer or Tokenizer(cfg.model)

    @property
    def model(self) -> str:
        return self._cfg.model

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    def build_messages(self, prompt: str) -> list[dict]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def summarize(self, prompt: str) -> SummaryResult:
        """Summarize *prompt*, retrying transient failures.

        Returns:
            SummaryResult with the parsed summary and token counts.

        Raises:
            TransportError / ServerError: Still failing when the elapsed budget ran out.
            ClientError: 4xx from the backend (never retried).
            DecodeError: Reply is not a valid summary payload.
            TimeoutExceeded: ``call_timeout_secs`` elapsed first.
        """
        messages = self.build_messages(prompt)
        input_tokens = self._tokenizer.count_messages(messages)
        try:
            return await asyncio.wait_for(
                self._summarize_with_retries(messages, input_tokens),
                timeout=self._cfg.call_timeout_secs,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutExceeded(
                f"Summarization with '{self.model}' exceeded {self._cfg.call_timeout_secs}s."
            ) from exc

    async def _summarize_with_retries(
        self, messages: list[dict], input_tokens: int
    ) -> SummaryResult:
        retrying = AsyncRetrying(
            wait=wait_exponential_jitter(
                initial=self._cfg.initial_backoff_secs,
                max=self._cfg.max_backoff_secs,
                jitter=self._cfg.initial_backoff_secs,
            ),
            stop=stop_after_delay(self._cfg.max_elapsed_secs),
            retry=retry_if_exception(self._is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(self._attempt, messages, input_tokens)

    def _is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, DecodeError):
            return self._cfg.retry_on_decode_error
        return isinstance(exc, SummarizationError) and exc.transient

    async def _attempt(self, messages: list[dict], input_tokens: int) -> SummaryResult:
        kwargs: dict = {
            "model": self._cfg.model,
            "messages": messages,
            "temperature": self._cfg.temperature,
            "max_tokens": self._cfg.max_output_tokens,
            "timeout": self._cfg.request_timeout_secs,
            "num_retries": 0,
        }
        if self._cfg.api_base:
            kwargs["api_base"] = self._cfg.api_base
        if self._cfg.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            raise classify_error(exc) from exc

        raw = _content(response)
        summary = Summary.from_json(raw)

        usage = getattr(response, "usage", None)
        native_in = _positive_int(getattr(usage, "prompt_tokens", None))
        native_out = _positive_int(getattr(usage, "completion_tokens", None))
        return SummaryResult(
            summary=summary,
            input_tokens=native_in or input_tokens,
            output_tokens=native_out or self._tokenizer.count(raw),
            raw=raw,
        )


def _content(response: object) -> str:
    try:
        content = response.choices[0].message.content  # type: ignore[attr-defined]
    except (AttributeError, IndexError, TypeError) as exc:
        raise DecodeError(f"Backend response has no message content: {exc}") from exc
    if not isinstance(content, str):
        raise DecodeError("Backend response message content is not text.")
    return content


def _positive_int(value: object) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None
