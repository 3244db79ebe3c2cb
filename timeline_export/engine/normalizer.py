"""Canonicalise captured tweet result nodes."""

from __future__ import annotations

from typing import Any

TWEET_TYPENAME = "Tweet"
# Visibility-restriction metadata wraps the real node under ``tweet``
WRAPPED_TWEET_TYPENAME = "TweetWithVisibilityResults"


def normalize_tweet_result(raw: Any) -> dict | None:
    """Return the canonical tweet node for ``raw`` or ``None``.

    Direct ``Tweet`` nodes come back unchanged, wrapped nodes are unwrapped one
    level, and everything else (tombstones, unavailable placeholders, missing
    type tags, non-mappings) is dropped.
    """

    if not isinstance(raw, dict):
        return None
    typename = raw.get("__typename")
    if typename == TWEET_TYPENAME:
        return raw
    if typename == WRAPPED_TWEET_TYPENAME:
        nested = raw.get("tweet")
        return nested if isinstance(nested, dict) else None
    return None


__all__ = ["TWEET_TYPENAME", "WRAPPED_TWEET_TYPENAME", "normalize_tweet_result"]
