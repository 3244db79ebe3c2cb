"""Resume payload parsing and lossless merge of previous and new items."""

from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

_CUSTOM_DATE = re.compile(r"(\d{4})\s*-\s*(\d{2})\s*-\s*(\d{2})\s*(\d{2}):(\d{2}):(\d{2})")


@dataclass
class ResumePayload:
    """Persisted snapshot of collected items for one normalized username."""

    username: str
    saved_at: int
    meta: dict | None = None
    tweets: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "saved_at": self.saved_at,
            "meta": self.meta,
            "tweets": list(self.tweets),
        }


@dataclass(frozen=True)
class ResumeParseResult:
    tweets: list[dict]
    meta: dict | None
    username: str | None


@dataclass(frozen=True)
class MergeMetadata:
    previous_count: int
    new_count: int
    duplicates_removed: int
    final_count: int
    username: str | None = None

    def as_merge_info(self) -> dict[str, int]:
        data = asdict(self)
        data.pop("username")
        return data


@dataclass(frozen=True)
class MergeResult:
    items: list[dict]
    metadata: MergeMetadata


def normalize_username(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized.startswith("@"):
        normalized = normalized[1:]
    normalized = normalized.lower()
    return normalized or None


def extract_tweets_from_export_data(data: Any) -> list[dict]:
    """Accept a bare list, ``{"items": [...]}`` or ``{"tweets": [...]}``, in that order."""

    if isinstance(data, list):
        return list(data)
    if not isinstance(data, dict):
        return []
    items = data.get("items")
    if isinstance(items, list):
        return list(items)
    tweets = data.get("tweets")
    if isinstance(tweets, list):
        return list(tweets)
    return []


def _extract_meta(data: Any) -> dict | None:
    if not isinstance(data, dict):
        return None
    for key in ("meta", "metadata"):
        candidate = data.get(key)
        if candidate is not None:
            return candidate if isinstance(candidate, dict) else None
    return None


def parse_resume_input(data: Any) -> ResumeParseResult:
    tweets = extract_tweets_from_export_data(data)
    meta = _extract_meta(data)
    username = normalize_username(meta.get("username")) if meta else None
    return ResumeParseResult(tweets=tweets, meta=meta, username=username)


def build_resume_payload(
    username: str,
    tweets: Sequence[dict],
    meta: dict | None = None,
    saved_at: int | None = None,
) -> ResumePayload:
    return ResumePayload(
        username=normalize_username(username) or "",
        saved_at=int(time.time() * 1000) if saved_at is None else saved_at,
        meta=meta,
        tweets=list(tweets),
    )


def _item_id(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    value = item.get("id")
    if value is None or value == "":
        return None
    return str(value)


def merge_items(
    previous: Sequence[dict],
    new: Sequence[dict],
    username: str | None = None,
) -> MergeResult:
    """Concatenate ``previous`` then ``new``; the first occurrence of an id wins.

    Items without an id cannot be proven equal to anything and are always kept.
    """

    seen: set[str] = set()
    merged: list[dict] = []
    for item in (*previous, *new):
        item_id = _item_id(item)
        if item_id is not None:
            if item_id in seen:
                continue
            seen.add(item_id)
        merged.append(item)

    previous_count = len(previous)
    new_count = len(new)
    metadata = MergeMetadata(
        previous_count=previous_count,
        new_count=new_count,
        duplicates_removed=previous_count + new_count - len(merged),
        final_count=len(merged),
        username=normalize_username(username),
    )
    return MergeResult(items=merged, metadata=metadata)


def parse_tweet_date(value: Any) -> datetime | None:
    """Parse export dates (``YYYY-MM-DD HH:MM:SS``) or ISO strings; ``None`` otherwise."""

    if not isinstance(value, str) or not value.strip():
        return None
    match = _CUSTOM_DATE.search(value)
    if match:
        year, month, day, hour, minute, second = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day, hour, minute, second)
        except ValueError:
            return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            # Raw API format, e.g. "Wed Oct 10 20:19:24 +0000 2018"
            parsed = datetime.strptime(text, "%a %b %d %H:%M:%S %z %Y")
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def sort_items_by_date_desc(items: Iterable[dict]) -> list[dict]:
    """Newest first; undated items keep their relative order at the end."""

    floor = datetime.min
    return sorted(
        items,
        key=lambda item: parse_tweet_date(item.get("created_at") if isinstance(item, dict) else None)
        or floor,
        reverse=True,
    )


def _earliest_iso(*values: Any) -> str | None:
    parsed: list[datetime] = []
    for value in values:
        if not isinstance(value, str):
            continue
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            candidate = datetime.fromisoformat(text)
        except ValueError:
            continue
        if candidate.tzinfo is None:
            candidate = candidate.replace(tzinfo=timezone.utc)
        parsed.append(candidate)
    if not parsed:
        return None
    return min(parsed).isoformat()


def _positive_number(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value > 0 else None


def build_consolidated_meta(
    username: str,
    started_at: str,
    completed_at: str,
    new_collected_count: int,
    previous_collected_count: int,
    collection_method: str,
    responses_captured: int,
    previous_meta: dict | None = None,
    merge: MergeMetadata | None = None,
    reported_count: int | None = None,
    user_id: str | None = None,
    name: str | None = None,
) -> dict[str, Any]:
    """Build export meta, carrying history forward from ``previous_meta`` on resume."""

    previous = previous_meta or {}
    previous_reported = _positive_number(previous.get("reported_count")) or _positive_number(
        previous.get("total_tweets_reported")
    )
    reported = [value for value in (_positive_number(reported_count), previous_reported) if value]
    prior_captured = _positive_number(previous.get("scroll_responses_captured")) or 0

    previous_started = previous.get("export_started_at") or previous.get("started_at")
    previous_completed = previous.get("export_completed_at") or previous.get("finished_at")
    if not isinstance(previous_started, str):
        previous_started = None
    if not isinstance(previous_completed, str):
        previous_completed = None

    meta: dict[str, Any] = {
        "username": username,
        "export_started_at": _earliest_iso(previous_started, started_at) or started_at,
        "export_completed_at": completed_at,
        "collected_count": (
            merge.final_count if merge else new_collected_count + previous_collected_count
        ),
        "new_collected_count": new_collected_count,
        "previous_collected_count": previous_collected_count,
        "reported_count": max(reported) if reported else None,
        "collection_method": collection_method,
        "scroll_responses_captured": responses_captured + (prior_captured if merge else 0),
    }
    if user_id:
        meta["user_id"] = user_id
    if name:
        meta["name"] = name
    if previous_started:
        meta["previous_export_started_at"] = previous_started
    if previous_completed:
        meta["previous_export_completed_at"] = previous_completed
    if merge:
        meta["merge_info"] = merge.as_merge_info()
    return meta


__all__ = [
    "MergeMetadata",
    "MergeResult",
    "ResumeParseResult",
    "ResumePayload",
    "build_consolidated_meta",
    "build_resume_payload",
    "extract_tweets_from_export_data",
    "merge_items",
    "normalize_username",
    "parse_resume_input",
    "parse_tweet_date",
    "sort_items_by_date_desc",
]
