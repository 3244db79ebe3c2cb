"""Timeline JSON parsing: instructions -> entries -> flattened export rows."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import structlog

from .normalizer import normalize_tweet_result

MAX_NESTED_DEPTH = 2
ADD_INSTRUCTION_TYPES = ("TimelineAddEntries", "TimelineReplaceEntry")
UNKNOWN_USER_ID = "unknown"

_PERMALINK_AUTHOR = re.compile(r"(?:twitter|x)\.com/([^/]+)/status")


@dataclass
class ExtractedTimeline:
    """Rows found in one timeline page plus the bottom cursor, if any."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def get_timeline_instructions(body: Any) -> list[dict]:
    candidates = (
        _dig(body, "data", "user", "result", "timeline_v2", "timeline", "instructions"),
        _dig(body, "data", "user", "result", "timeline", "timeline", "instructions"),
        _dig(body, "data", "search_by_raw_query", "search_timeline", "timeline", "instructions"),
    )
    for instructions in candidates:
        if isinstance(instructions, list) and instructions:
            return [item for item in instructions if isinstance(item, dict)]
    return []


def format_created_at(value: Any) -> str:
    """Render the API's ``created_at`` as ``YYYY-MM-DD HH:MM:SS``; unparseable values pass through."""

    if not value:
        return ""
    text = str(value)
    try:
        return datetime.strptime(text, "%a %b %d %H:%M:%S %z %Y").strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return text


def _unwrap_user_result(user_result: Any) -> dict | None:
    if not isinstance(user_result, dict):
        return None
    result = user_result
    if isinstance(result.get("result"), dict):
        result = result["result"]
    nested = _dig(result, "user_results", "result")
    if isinstance(nested, dict):
        result = nested
    if isinstance(result.get("user"), dict):
        result = result["user"]
    return result


def extract_user_info(user_result: Any) -> dict | None:
    result = _unwrap_user_result(user_result)
    if not result:
        return None
    legacy = result.get("legacy") or {}
    core = result.get("core") or {}
    user_id = result.get("rest_id") or result.get("id_str")
    if not user_id:
        return None
    verified = legacy.get("verified")
    if verified is None:
        verified = _dig(result, "verification", "verified") or False
    return {
        "id": user_id,
        "username": core.get("screen_name") or legacy.get("screen_name"),
        "name": core.get("name") or legacy.get("name"),
        "verified": verified,
        "followers_count": legacy.get("followers_count"),
        "following_count": legacy.get("friends_count"),
    }


def _collect_media(legacy: dict) -> list[dict] | None:
    source = _dig(legacy, "extended_entities", "media") or _dig(legacy, "entities", "media") or []
    media: list[dict] = []
    for entry in source:
        if not isinstance(entry, dict):
            continue
        item = {"type": entry.get("type"), "url": entry.get("media_url_https")}
        if entry.get("type") in ("video", "animated_gif"):
            variants = [
                variant
                for variant in _dig(entry, "video_info", "variants") or []
                if isinstance(variant, dict) and "video" in str(variant.get("content_type") or "")
            ]
            variants.sort(key=lambda variant: variant.get("bitrate") or 0, reverse=True)
            if variants:
                item["video_url"] = variants[0].get("url")
        media.append(item)
    return media or None


def _full_text(tweet: dict) -> str:
    note = _dig(tweet, "note_tweet", "note_tweet_results", "result", "text")
    if note:
        return note
    return _dig(tweet, "legacy", "full_text") or ""


def _base_row(tweet: dict) -> dict[str, Any]:
    legacy = tweet.get("legacy") or {}
    entities = legacy.get("entities") or {}
    hashtags = [entry.get("text") for entry in entities.get("hashtags") or [] if entry.get("text")]
    urls = [
        {
            "url": entry.get("url"),
            "expanded_url": entry.get("expanded_url"),
            "display_url": entry.get("display_url"),
        }
        for entry in entities.get("urls") or []
    ]
    mentions = [
        {"id": entry.get("id_str"), "username": entry.get("screen_name"), "name": entry.get("name")}
        for entry in entities.get("user_mentions") or []
    ]
    return {
        "id": tweet.get("rest_id"),
        "author": extract_user_info(_dig(tweet, "core", "user_results", "result")),
        "text": _full_text(tweet),
        "created_at": format_created_at(legacy.get("created_at")),
        "favorite_count": legacy.get("favorite_count"),
        "retweet_count": legacy.get("retweet_count"),
        "reply_count": legacy.get("reply_count"),
        "quote_count": legacy.get("quote_count"),
        "bookmark_count": legacy.get("bookmark_count"),
        "view_count": _dig(tweet, "views", "count"),
        "in_reply_to_status_id": legacy.get("in_reply_to_status_id_str") or None,
        "in_reply_to_user_id": legacy.get("in_reply_to_user_id_str") or None,
        "in_reply_to_username": legacy.get("in_reply_to_screen_name") or None,
        "conversation_id": legacy.get("conversation_id_str") or None,
        "language": legacy.get("lang"),
        "source": tweet.get("source"),
        "hashtags": hashtags or None,
        "urls": urls or None,
        "media": _collect_media(legacy),
        "mentions": mentions or None,
        "is_quote_status": bool(legacy.get("is_quote_status")),
        "possibly_sensitive": bool(legacy.get("possibly_sensitive")),
        "permalink": _dig(legacy, "quoted_status_permalink", "expanded") or None,
    }


class TimelineParser:
    """Turn captured timeline responses into deduplicated export rows."""

    def __init__(
        self,
        minimal_data: bool = True,
        include_replies: bool = False,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.minimal_data = minimal_data
        self.include_replies = include_replies
        self.logger = logger or structlog.get_logger("timeline_export.parser")

    # ------------------------------------------------------------------
    def build_tweet_row(self, tweet: dict, item_type: str = "Tweet", depth: int = 0) -> dict | None:
        if not isinstance(tweet, dict) or depth > MAX_NESTED_DEPTH:
            return None
        row = _base_row(tweet)
        permalink = row.get("permalink")
        if permalink and not (row.get("author") or {}).get("username"):
            match = _PERMALINK_AUTHOR.search(permalink)
            if match:
                row["author"] = {**(row.get("author") or {}), "username": match.group(1)}
        note_text = _dig(tweet, "note_tweet", "note_tweet_results", "result", "text")
        if note_text and note_text != row["text"]:
            row["note_tweet_text"] = note_text

        quoted = normalize_tweet_result(_dig(tweet, "quoted_status_result", "result"))
        if quoted:
            quoted_row = self.build_tweet_row(quoted, depth=depth + 1)
            if quoted_row:
                row["quoted_tweet"] = quoted_row
        retweeted = normalize_tweet_result(_dig(tweet, "legacy", "retweeted_status_result", "result"))
        if retweeted:
            retweeted_row = self.build_tweet_row(retweeted, depth=depth + 1)
            if retweeted_row:
                row["retweeted_tweet"] = retweeted_row

        row = {key: value for key, value in row.items() if value is not None}
        if item_type != "Tweet":
            row["type"] = item_type
        if not self.minimal_data and depth == 0:
            row["raw"] = tweet
        return row

    def extract_timeline(self, body: Any) -> ExtractedTimeline:
        extracted = ExtractedTimeline()
        for instruction in get_timeline_instructions(body):
            if instruction.get("type") not in ADD_INSTRUCTION_TYPES:
                continue
            entries = instruction.get("entries")
            if entries is None:
                entries = [instruction["entry"]] if isinstance(instruction.get("entry"), dict) else []
            for entry in entries:
                if isinstance(entry, dict):
                    self._process_entry(entry, extracted)
        return extracted

    def extract_items_from_responses(
        self,
        bodies: Iterable[Any],
        target_user_id: str = UNKNOWN_USER_ID,
        seen_ids: set[str] | None = None,
    ) -> list[dict]:
        """Collect new rows across responses, skipping ids in ``seen_ids`` (updated in place)."""

        seen = seen_ids if seen_ids is not None else set()
        collected: list[dict] = []
        for body in bodies:
            try:
                items = self.extract_timeline(body).items
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                self.logger.debug("timeline_extract_failed", error=str(exc))
                continue
            for item in items:
                item_id = item.get("id")
                if not self._should_include(item, target_user_id) or item_id in seen:
                    continue
                seen.add(item_id)
                collected.append(item)
        return collected

    # ------------------------------------------------------------------
    def _process_entry(self, entry: dict, extracted: ExtractedTimeline) -> None:
        entry_id = str(entry.get("entryId") or "")
        content = entry.get("content") or {}
        if entry_id.startswith("promoted-tweet-"):
            return
        if entry_id.startswith("tweet-"):
            tweet = normalize_tweet_result(_dig(content, "itemContent", "tweet_results", "result"))
            if tweet is None:
                return
            is_retweet = bool(_dig(tweet, "legacy", "retweeted_status_result", "result"))
            row = self.build_tweet_row(tweet, "Retweet" if is_retweet else "Tweet")
            if row:
                extracted.items.append(row)
            return
        if entry_id.startswith("profile-conversation-"):
            for convo_item in content.get("items") or []:
                tweet = normalize_tweet_result(
                    _dig(convo_item, "item", "itemContent", "tweet_results", "result")
                )
                row = self.build_tweet_row(tweet) if tweet else None
                if row:
                    extracted.items.append(row)
            return
        if entry_id.startswith("cursor-bottom-") and content.get("cursorType") == "Bottom":
            extracted.next_cursor = content.get("value")

    def _should_include(self, item: dict, target_user_id: str) -> bool:
        if not item.get("id"):
            return False
        if item.get("type") == "Retweet":
            return True
        author_id = (item.get("author") or {}).get("id")
        if target_user_id != UNKNOWN_USER_ID and author_id != target_user_id:
            return False
        if not self.include_replies:
            reply_to = item.get("in_reply_to_user_id")
            if reply_to and reply_to != author_id:
                return False
        return True


__all__ = [
    "ExtractedTimeline",
    "TimelineParser",
    "extract_user_info",
    "format_created_at",
    "get_timeline_instructions",
]
