"""Resume-from-file helpers: validate an imported export and derive where to resume."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from urllib.parse import parse_qs, quote

from ..errors import ResumeImportError
from .resume import (
    extract_tweets_from_export_data,
    normalize_username,
    parse_resume_input,
    parse_tweet_date,
    sort_items_by_date_desc,
)

RESERVED_SEGMENTS = frozenset(
    {
        "home",
        "explore",
        "search",
        "notifications",
        "messages",
        "bookmarks",
        "lists",
        "settings",
        "compose",
        "i",
        "intent",
        "login",
        "logout",
        "signup",
        "tos",
        "privacy",
        "about",
        "help",
        "jobs",
        "download",
    }
)

_PROFILE_PATH = re.compile(r"^/([A-Za-z0-9_]{1,15})(?:/|$)")
_FROM_QUERY = re.compile(r"from:([A-Za-z0-9_]+)", re.IGNORECASE)


@dataclass(frozen=True)
class ResumeImportDetails:
    tweets: list[dict]
    source_meta: dict | None
    oldest_tweet: dict
    until_date: str
    username: str


def parse_resume_import(data: Any, fallback_username: str | None = None) -> ResumeImportDetails:
    """Validate a user-supplied file; failures are user-facing, so they raise."""

    tweets = extract_tweets_from_export_data(data)
    if not tweets:
        raise ResumeImportError("No tweets found in file")
    parsed = parse_resume_input(data)
    ordered = sort_items_by_date_desc(tweets)
    oldest = ordered[-1]
    oldest_date = parse_tweet_date(oldest.get("created_at") if isinstance(oldest, dict) else None)
    if oldest_date is None:
        raise ResumeImportError("Could not parse date from oldest tweet")
    username = parsed.username or normalize_username(fallback_username) or "unknown"
    return ResumeImportDetails(
        tweets=ordered,
        source_meta=parsed.meta,
        oldest_tweet=oldest,
        until_date=(oldest_date + timedelta(days=1)).strftime("%Y-%m-%d"),
        username=username,
    )


def build_resume_url(username: str, until_date: str) -> str:
    query = quote(f"from:{username} until:{until_date}")
    return f"https://x.com/search?q={query}&src=typed_query&f=live"


def extract_username_from_location(pathname: str, search: str = "") -> str | None:
    """Infer the timeline owner from a page location, if it names one."""

    if pathname == "/search":
        query = parse_qs(search.lstrip("?")).get("q", [""])[0]
        match = _FROM_QUERY.search(query)
        return match.group(1).lower() if match else None
    match = _PROFILE_PATH.match(pathname)
    if not match:
        return None
    username = match.group(1)
    if username.lower() in RESERVED_SEGMENTS:
        return None
    return username


__all__ = [
    "RESERVED_SEGMENTS",
    "ResumeImportDetails",
    "build_resume_url",
    "extract_username_from_location",
    "parse_resume_import",
]
