"""Shared fixtures: isolated home directory and captured timeline payload builders."""

from __future__ import annotations

import os

# Rich reads COLUMNS when the CLI console is created; give captured output a wide,
# deterministic width so long tmp paths do not wrap assertion text across lines.
os.environ.setdefault("COLUMNS", "200")

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from timeline_export.config import ConfigLocator, ConfigRepository

TARGET_USER_ID = "1001"


def _user_result(user_id: str, screen_name: str, name: str | None = None) -> dict[str, Any]:
    return {
        "result": {
            "__typename": "User",
            "rest_id": user_id,
            "core": {"screen_name": screen_name, "name": name or screen_name.title()},
            "legacy": {"followers_count": 10, "friends_count": 5, "verified": False},
        }
    }


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TIMELINE_EXPORT_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def repository(home: Path) -> Iterable[ConfigRepository]:
    yield ConfigRepository(ConfigLocator())


@pytest.fixture
def make_tweet() -> Callable[..., dict[str, Any]]:
    """Build a raw ``Tweet`` result node as captured from the timeline API."""

    def _builder(
        tweet_id: str,
        text: str = "hello",
        user_id: str = TARGET_USER_ID,
        screen_name: str = "alice",
        created_at: str = "Wed Oct 10 20:19:24 +0000 2018",
        reply_to_user_id: str | None = None,
        **legacy_overrides: Any,
    ) -> dict[str, Any]:
        legacy: dict[str, Any] = {
            "full_text": text,
            "created_at": created_at,
            "favorite_count": 3,
            "retweet_count": 1,
            "reply_count": 0,
            "quote_count": 0,
            "lang": "en",
            "entities": {"hashtags": [], "urls": [], "user_mentions": []},
        }
        if reply_to_user_id:
            legacy["in_reply_to_user_id_str"] = reply_to_user_id
            legacy["in_reply_to_status_id_str"] = "1"
        legacy.update(legacy_overrides)
        return {
            "__typename": "Tweet",
            "rest_id": tweet_id,
            "core": {"user_results": _user_result(user_id, screen_name)},
            "legacy": legacy,
            "views": {"count": "42"},
        }

    return _builder


@pytest.fixture
def make_timeline_body() -> Callable[..., dict[str, Any]]:
    """Wrap tweet nodes into a ``UserTweets`` response body."""

    def _builder(tweets: Iterable[dict[str, Any]], cursor: str | None = "cursor-1") -> dict[str, Any]:
        entries: list[dict[str, Any]] = [
            {
                "entryId": f"tweet-{tweet.get('rest_id') or (tweet.get('tweet') or {}).get('rest_id')}",
                "content": {"itemContent": {"tweet_results": {"result": tweet}}},
            }
            for tweet in tweets
        ]
        if cursor:
            entries.append(
                {
                    "entryId": f"cursor-bottom-{cursor}",
                    "content": {"cursorType": "Bottom", "value": cursor},
                }
            )
        return {
            "data": {
                "user": {
                    "result": {
                        "timeline_v2": {
                            "timeline": {
                                "instructions": [
                                    {"type": "TimelineClearCache"},
                                    {"type": "TimelineAddEntries", "entries": entries},
                                ]
                            }
                        }
                    }
                }
            }
        }

    return _builder
