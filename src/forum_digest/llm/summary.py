"""Structured thread summary parsed from the model's JSON reply."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from forum_digest.llm.errors import DecodeError
from forum_digest.text.sanitize import strip_post_tags


@dataclass(frozen=True)
class Summary:
    """Headline plus bullets; ``citations[i]`` belongs to ``bullets[i]`` when present."""

    headline: str
    bullets: list[str] = field(default_factory=list)
    citations: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, raw: str) -> Summary:
        """Parse *raw* strictly; anything short of the full shape is a DecodeError."""
        try:
            data: Any = json.loads(raw, parse_constant=_reject_constant)
        except (json.JSONDecodeError, TypeError) as exc:
            raise DecodeError(f"Summary is not valid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise DecodeError(f"Summary JSON must be an object, got {type(data).__name__}.")

        headline = data.get("headline")
        if not isinstance(headline, str):
            raise DecodeError("Summary JSON is missing a string 'headline'.")

        bullets = _string_list(data, "bullets", required=True)
        citations = _string_list(data, "citations", required=False)
        return cls(headline=headline, bullets=bullets, citations=citations)

    def citation_for(self, index: int) -> str | None:
        if 0 <= index < len(self.citations):
            cite = self.citations[index].strip()
            return cite or None
        return None

    def sanitized(self) -> Summary:
        """Copy with post anchors stripped from the headline and bullets.

        Citations are left alone: they are meant to reference posts.
        """
        return replace(
            self,
            headline=strip_post_tags(self.headline),
            bullets=[strip_post_tags(b) for b in self.bullets],
        )

    def to_json(self) -> str:
        return json.dumps(
            {"headline": self.headline, "bullets": self.bullets, "citations": self.citations},
            ensure_ascii=False,
        )

    def to_text(self) -> str:
        lines = [self.headline.strip()]
        for i, bullet in enumerate(self.bullets):
            cite = self.citation_for(i)
            lines.append(f" - {bullet.strip()} {cite}" if cite else f" - {bullet.strip()}")
        return "\n".join(lines)


def _reject_constant(name: str) -> Any:
    raise DecodeError(f"Summary JSON contains non-standard constant '{name}'.")


def _string_list(data: dict, key: str, required: bool) -> list[str]:
    if key not in data or data[key] is None:
        if required:
            raise DecodeError(f"Summary JSON is missing '{key}'.")
        return []
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DecodeError(f"Summary JSON field '{key}' must be a list of strings.")
    return list(value)
