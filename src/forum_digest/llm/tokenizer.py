"""Token counting shared by prompt budgeting and usage accounting."""

from __future__ import annotations

from dataclasses import dataclass

import litellm


@dataclass(frozen=True)
class Tokenizer:
    """Counts tokens the way *model* does.

    Build one per run and hand the same instance to everything that sizes or
    reports tokens, so budgets and reported usage agree.
    """

    model: str

    def count(self, text: str) -> int:
        """Count tokens with LiteLLM's provider-aware counter.

        Falls back to 4 chars ≈ 1 token (minimum 1) if the model is not
        supported by litellm.token_counter().
        """
        try:
            return litellm.token_counter(model=self.model, text=text)
        except Exception:
            return max(1, len(text) // 4)

    def count_messages(self, messages: list[dict]) -> int:
        return sum(self.count(m.get("content") or "") for m in messages)
