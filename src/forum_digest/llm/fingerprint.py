"""Deterministic cache key over (topic, model, prompt)."""

from __future__ import annotations

import hashlib


def prompt_hash(topic_id: int, model: str, prompt: str) -> str:
    """Return the SHA-256 hex digest of ``model \\n id \\n prompt``.

    *topic_id* is encoded as a signed 64-bit big-endian integer, so the
    digest matches rows written by earlier runs for the same inputs.
    """
    h = hashlib.sha256()
    h.update(model.encode("utf-8"))
    h.update(b"\n")
    h.update(topic_id.to_bytes(8, "big", signed=True))
    h.update(b"\n")
    h.update(prompt.encode("utf-8"))
    return h.hexdigest()
