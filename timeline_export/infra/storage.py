"""Storage abstractions for resume payload persistence."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Dict, Protocol

import structlog

from ..engine.resume import ResumePayload, build_resume_payload, normalize_username


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS resume_payloads (
                username TEXT PRIMARY KEY,
                saved_at INTEGER NOT NULL,
                payload TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class ResumeStore(Protocol):
    """Logical contract the export session relies on."""

    def load(self, username: str, now_ms: int | None = None) -> ResumePayload | None:
        """Return the payload saved for ``username`` unless it expired by ``now_ms``."""

    def save(self, payload: ResumePayload) -> bool:
        """Persist ``payload``; ``False`` when it is not worth keeping."""

    def clear(self, username: str | None = None) -> None:
        """Drop one user's payload, or all of them."""


def _coerce_payload(data: object) -> ResumePayload | None:
    if not isinstance(data, dict):
        return None
    tweets = data.get("tweets")
    if not isinstance(tweets, list) or not tweets:
        return None
    username = normalize_username(data.get("username"))
    if not username:
        return None
    meta = data.get("meta")
    saved_at = data.get("saved_at")
    if isinstance(saved_at, bool) or not isinstance(saved_at, (int, float)):
        saved_at = int(time.time() * 1000)
    return build_resume_payload(
        username=username,
        tweets=tweets,
        meta=meta if isinstance(meta, dict) else None,
        saved_at=int(saved_at),
    )


class SQLiteResumeStore:
    """One resume payload per normalized username, expired after ``max_age_ms``."""

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        max_age_ms: int = 6 * 60 * 60 * 1000,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self.max_age_ms = max_age_ms
        self.logger = logger or structlog.get_logger("timeline_export.storage")
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    def save(self, payload: ResumePayload) -> bool:
        normalized = _coerce_payload(payload.to_dict())
        if normalized is None:
            self.logger.debug("resume_payload_rejected", username=payload.username)
            return False
        body = json.dumps(normalized.to_dict(), ensure_ascii=False)
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO resume_payloads(username, saved_at, payload) VALUES (?, ?, ?)",
                (normalized.username, normalized.saved_at, body),
            )
            self._conn.commit()
        self.logger.info(
            "resume_payload_saved",
            username=normalized.username,
            tweets=len(normalized.tweets),
        )
        return True

    def load(self, username: str, now_ms: int | None = None) -> ResumePayload | None:
        expected = normalize_username(username)
        if not expected:
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM resume_payloads WHERE username = ?", (expected,)
            ).fetchone()
        if row is None:
            return None
        try:
            payload = _coerce_payload(json.loads(row["payload"]))
        except json.JSONDecodeError as exc:
            self.logger.warning("resume_payload_corrupt", username=expected, error=str(exc))
            payload = None
        if payload is None:
            self.clear(expected)
            return None
        now = int(time.time() * 1000) if now_ms is None else now_ms
        if now - payload.saved_at > self.max_age_ms:
            self.logger.info("resume_payload_expired", username=expected, saved_at=payload.saved_at)
            self.clear(expected)
            return None
        if payload.username != expected:
            return None
        return payload

    def clear(self, username: str | None = None) -> None:
        with self._lock:
            if username is None:
                self._conn.execute("DELETE FROM resume_payloads")
            else:
                self._conn.execute(
                    "DELETE FROM resume_payloads WHERE username = ?",
                    (normalize_username(username) or username,),
                )
            self._conn.commit()

    def list_usernames(self) -> list[tuple[str, int]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT username, saved_at FROM resume_payloads ORDER BY saved_at DESC"
            ).fetchall()
        return [(row["username"], row["saved_at"]) for row in rows]


__all__ = ["ResumeStore", "SQLiteManager", "SQLiteResumeStore"]
