"""Export session wiring interception events into the pure export core."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import structlog

from .config import ConfigRepository, ExportSettings, GlobalConfig
from .engine.exporter import BaseExporter, FileExporter
from .engine.lifecycle import (
    LifecycleAction,
    LifecycleActionType,
    LifecycleState,
    LifecycleStatus,
    LooksDoneParams,
    create_initial_lifecycle,
    reduce_lifecycle,
    should_prompt_looks_done,
)
from .engine.parser import UNKNOWN_USER_ID, TimelineParser
from .engine.rate_limit import (
    RateLimitMode,
    apply_rate_limit_info,
    create_rate_limit_state,
    get_cooldown_details,
    parse_rate_limit_headers,
    reset_rate_limit_state_for_run,
)
from .engine.resume import (
    MergeResult,
    build_consolidated_meta,
    build_resume_payload,
    merge_items,
    normalize_username,
)
from .errors import UnsupportedEventError
from .infra import ResumeStore
from .logging_conf import session_context, session_logger

RATE_LIMIT_STATUS = 429

ExporterFactory = Callable[[str, ExportSettings], BaseExporter]


class SessionEventType(str, Enum):
    RESPONSE = "response"
    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    SCROLL = "scroll"
    RESUME = "resume"
    CANCEL = "cancel"


@dataclass(slots=True)
class SessionEvent:
    """One observation delivered by the page-side interception layer."""

    type: SessionEventType
    url: str | None = None
    status: int = 200
    headers: dict[str, Any] | None = None
    body: Any = None
    at: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionEvent":
        raw_type = data.get("type")
        try:
            event_type = SessionEventType(raw_type)
        except ValueError as exc:
            raise UnsupportedEventError(raw_type) from exc
        return cls(
            type=event_type,
            url=data.get("url"),
            status=_coerce_status(data.get("status")),
            headers=data.get("headers") if isinstance(data.get("headers"), dict) else None,
            body=data.get("body"),
            at=data.get("at") if isinstance(data.get("at"), int) else None,
        )


@dataclass(slots=True)
class ExportResult:
    username: str
    status: LifecycleStatus
    items: list[dict]
    meta: dict[str, Any]
    path: Path | None = None
    merge: MergeResult | None = None


@dataclass(slots=True)
class _Progress:
    responses_captured: int = 0
    scroll_count: int = 0
    cooldown_until: int | None = None
    started_at: int | None = None
    buffer: list[dict] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)


def _coerce_status(value: Any) -> int:
    if isinstance(value, bool):
        return 200
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 200


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


class ExportSession:
    """Single-writer dispatcher for one timeline export.

    Every state change goes through :meth:`dispatch`, :meth:`poll`,
    :meth:`checkpoint` or :meth:`finish`; policy decisions stay in the engine
    functions this class calls.
    """

    def __init__(
        self,
        username: str,
        config_repository: ConfigRepository,
        resume_store: ResumeStore | None = None,
        settings: ExportSettings | None = None,
        target_user_id: str = UNKNOWN_USER_ID,
        collection_method: str = "scroll",
        exporter_factory: ExporterFactory | None = None,
        clock: Callable[[], int] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.username = normalize_username(username) or "unknown"
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.settings = settings or config_repository.load_settings()
        self.resume_store = resume_store
        self.target_user_id = target_user_id
        self.collection_method = collection_method
        self.exporter_factory = exporter_factory or self._default_exporter
        self.clock = clock or _now_ms
        self.logger = (logger or session_logger(self.username)).bind(component="export_session")

        self.policy = self.global_config.rate_limit
        self.rate_state = create_rate_limit_state(self.policy)
        self.lifecycle: LifecycleState = create_initial_lifecycle(self.clock())
        self.parser = TimelineParser(
            minimal_data=self.settings.minimal_data,
            include_replies=self.settings.include_replies,
            logger=self.logger,
        )
        self.previous_items: list[dict] = []
        self.previous_meta: dict | None = None
        self.previous_ids: set[str] = set()
        self.progress = _Progress()
        self._result: ExportResult | None = None

    # ------------------------------------------------------------------
    # Lifecycle entry points
    # ------------------------------------------------------------------
    @property
    def status(self) -> LifecycleStatus:
        return self.lifecycle.status

    @property
    def collected_count(self) -> int:
        return len(self.previous_items) + sum(1 for item in self.progress.buffer if self._is_new(item))

    def start(self, now: int | None = None) -> LifecycleState:
        at = self.clock() if now is None else now
        reset_rate_limit_state_for_run(self.rate_state, self.policy)
        self.progress.started_at = at
        self._reduce(LifecycleActionType.START, at)
        if self.resume_store is not None:
            payload = self.resume_store.load(self.username, now_ms=at)
            if payload is not None:
                self.previous_items = list(payload.tweets)
                self.previous_meta = payload.meta
                self.previous_ids = {
                    str(item["id"]) for item in self.previous_items if isinstance(item, dict) and item.get("id")
                }
                self.logger.info("resume_payload_loaded", previous_count=len(self.previous_items))
        self.logger.info("export_started", target_user_id=self.target_user_id)
        return self.lifecycle

    def dispatch(self, event: SessionEvent | dict[str, Any]) -> LifecycleState:
        """Translate one event into core calls and return the resulting lifecycle."""

        if isinstance(event, dict):
            event = SessionEvent.from_dict(event)
        try:
            event_type = SessionEventType(event.type)
        except ValueError as exc:
            raise UnsupportedEventError(event.type) from exc
        at = self.clock() if event.at is None else event.at

        with session_context(self.username, event=event_type.value):
            if event_type is SessionEventType.RESPONSE:
                if event.status == RATE_LIMIT_STATUS:
                    self._pause(at, reason="rate_limit")
                else:
                    self._on_response(event, at)
            elif event_type is SessionEventType.RATE_LIMIT:
                self._pause(at, reason="rate_limit")
            elif event_type is SessionEventType.AUTH_ERROR:
                self._pause(at, reason="auth_error")
            elif event_type is SessionEventType.SCROLL:
                self.progress.scroll_count += 1
            elif event_type is SessionEventType.RESUME:
                self._reduce(LifecycleActionType.RESUME_MANUAL, at)
                if self.lifecycle.status is LifecycleStatus.RUNNING:
                    self.rate_state.mode = RateLimitMode.NORMAL
                    self.logger.info("resumed_manually", retry_count=self.rate_state.retry_count)
            elif event_type is SessionEventType.CANCEL:
                self.cancel(at)
        return self.lifecycle

    def poll(
        self,
        now: int | None = None,
        scroll_count: int | None = None,
        height_stable: bool = False,
    ) -> bool:
        """Leave an elapsed cooldown, then report whether the feed looks exhausted."""

        at = self.clock() if now is None else now
        if scroll_count is not None:
            self.progress.scroll_count = scroll_count
        cooldown_until = self.progress.cooldown_until
        if self.lifecycle.status is LifecycleStatus.COOLDOWN and cooldown_until is not None and at >= cooldown_until:
            self.progress.cooldown_until = None
            self.rate_state.mode = RateLimitMode.NORMAL
            self._reduce(LifecycleActionType.EXIT_COOLDOWN, at)
            self.logger.info("cooldown_finished")
        completion = self.global_config.completion
        return should_prompt_looks_done(
            self.lifecycle,
            LooksDoneParams(
                now=at,
                idle_threshold_ms=completion.idle_threshold_ms,
                scroll_count=self.progress.scroll_count,
                responses_captured=self.progress.responses_captured,
                height_stable=height_stable,
            ),
            min_scroll_count=completion.min_scroll_count,
        )

    def checkpoint(self, now: int | None = None) -> bool:
        """Persist previous plus buffered items so an interrupted run can resume."""

        if self.resume_store is None:
            return False
        at = self.clock() if now is None else now
        merged = merge_items(self.previous_items, self.progress.buffer, self.username)
        meta = self._build_meta(at, merged if self.previous_items else None)
        payload = build_resume_payload(self.username, merged.items, meta=meta, saved_at=at)
        saved = self.resume_store.save(payload)
        self.logger.debug("checkpoint", saved=saved, count=merged.metadata.final_count)
        return saved

    def cancel(self, now: int | None = None) -> LifecycleState:
        at = self.clock() if now is None else now
        if not self.lifecycle.is_terminal:
            self.checkpoint(at)
        self._reduce(LifecycleActionType.CANCEL, at)
        self.logger.info("export_cancelled", collected=self.collected_count)
        return self.lifecycle

    def finish(self, now: int | None = None) -> ExportResult:
        """Complete the run, write the consolidated export and drop the resume payload."""

        if self._result is not None:
            return self._result
        at = self.clock() if now is None else now
        # Route any live state back through running so the completion path is the normal one
        if self.lifecycle.status is LifecycleStatus.IDLE:
            self._reduce(LifecycleActionType.START, at)
        elif self.lifecycle.status is LifecycleStatus.COOLDOWN:
            self.progress.cooldown_until = None
            self._reduce(LifecycleActionType.EXIT_COOLDOWN, at)
        elif self.lifecycle.status is LifecycleStatus.PAUSED_RATE_LIMIT:
            self._reduce(LifecycleActionType.RESUME_MANUAL, at)
        self._reduce(LifecycleActionType.MARK_PENDING_DONE, at)
        self._reduce(LifecycleActionType.COMPLETE, at)

        merge = None
        items = list(self.progress.buffer)
        if self.previous_items:
            merge = merge_items(self.previous_items, self.progress.buffer, self.username)
            items = merge.items
        meta = self._build_meta(at, merge)

        with session_context(self.username, event="finish"):
            exporter = self.exporter_factory(self.username, self.settings)
            try:
                exporter.set_meta(meta)
                exporter.export_many(items)
                exporter.flush()
            finally:
                exporter.close()
            if self.resume_store is not None and self.lifecycle.status is LifecycleStatus.COMPLETED:
                self.resume_store.clear(self.username)

        path = getattr(exporter, "path", None)
        self.logger.info(
            "export_finished",
            status=self.lifecycle.status.value,
            collected=len(items),
            path=str(path) if path else None,
        )
        self._result = ExportResult(
            username=self.username,
            status=self.lifecycle.status,
            items=items,
            meta=meta,
            path=path,
            merge=merge,
        )
        return self._result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _reduce(self, action_type: LifecycleActionType, at: int) -> None:
        before = self.lifecycle.status
        self.lifecycle = reduce_lifecycle(self.lifecycle, LifecycleAction(action_type, at))
        if self.lifecycle.status is not before:
            self.logger.debug(
                "lifecycle_transition",
                action=action_type.value,
                previous=before.value,
                current=self.lifecycle.status.value,
            )

    def _on_response(self, event: SessionEvent, at: int) -> None:
        if self.lifecycle.is_terminal or self.lifecycle.status is LifecycleStatus.PENDING_DONE:
            return
        new_items = self.parser.extract_items_from_responses(
            [event.body], self.target_user_id, self.progress.seen_ids
        )
        max_count = self.settings.max_count
        if max_count:
            new_items = self._within_limit(new_items, max(max_count - self.collected_count, 0))
        self.progress.buffer.extend(new_items)
        self.progress.responses_captured += 1
        self._reduce(LifecycleActionType.ACTIVITY, at)
        if self.rate_state.mode is not RateLimitMode.PAUSED:
            self.rate_state.retry_count = 0

        update = apply_rate_limit_info(
            self.rate_state, parse_rate_limit_headers(event.headers), self.policy, at
        )
        self.logger.debug(
            "rate_limit_update",
            url=event.url,
            new_items=len(new_items),
            remaining=self.rate_state.remaining,
            limit=self.rate_state.limit,
            delay_ms=self.rate_state.dynamic_delay_ms,
        )

        if max_count and self.collected_count >= max_count:
            self._reduce(LifecycleActionType.MARK_PENDING_DONE, at)
            self.logger.info("max_count_reached", max_count=max_count)
            return
        if update.triggered and self.lifecycle.status is LifecycleStatus.RUNNING:
            details = get_cooldown_details(self.rate_state, self.policy, at)
            self.rate_state.mode = RateLimitMode.COOLDOWN
            self.progress.cooldown_until = at + details.duration_ms
            self._reduce(LifecycleActionType.ENTER_COOLDOWN, at)
            self.logger.info(
                "entering_cooldown",
                duration_ms=details.duration_ms,
                reason=details.reason,
                batch=update.triggered_batch_cooldown,
                low_remaining=update.triggered_low_remaining_cooldown,
            )

    def _pause(self, at: int, reason: str) -> None:
        if self.rate_state.mode is RateLimitMode.PAUSED or self.lifecycle.is_terminal:
            return
        if self.lifecycle.status is LifecycleStatus.COOLDOWN:
            self.progress.cooldown_until = None
            self._reduce(LifecycleActionType.EXIT_COOLDOWN, at)
        self._reduce(LifecycleActionType.PAUSE_RATE_LIMIT, at)
        if self.lifecycle.status is not LifecycleStatus.PAUSED_RATE_LIMIT:
            return
        self.rate_state.mode = RateLimitMode.PAUSED
        self.rate_state.retry_count += 1
        self.checkpoint(at)
        self.logger.warning(
            "export_paused",
            reason=reason,
            retry_count=self.rate_state.retry_count,
            collected=self.collected_count,
        )

    def _build_meta(self, at: int, merge: MergeResult | None) -> dict[str, Any]:
        author = self._target_author()
        return build_consolidated_meta(
            username=self.username,
            started_at=_iso(self.progress.started_at or at),
            completed_at=_iso(at),
            new_collected_count=len(self.progress.buffer),
            previous_collected_count=len(self.previous_items),
            collection_method=self.collection_method,
            responses_captured=self.progress.responses_captured,
            previous_meta=self.previous_meta,
            merge=merge.metadata if merge else None,
            user_id=author.get("id") if author else None,
            name=author.get("name") if author else None,
        )

    def _is_new(self, item: Any) -> bool:
        item_id = item.get("id") if isinstance(item, dict) else None
        return not item_id or str(item_id) not in self.previous_ids

    def _within_limit(self, items: list[dict], room: int) -> list[dict]:
        # Items already held from a previous session do not consume room
        kept: list[dict] = []
        for item in items:
            if self._is_new(item):
                if room <= 0:
                    break
                room -= 1
            kept.append(item)
        return kept

    def _target_author(self) -> dict | None:
        for item in (*self.progress.buffer, *self.previous_items):
            author = item.get("author") if isinstance(item, dict) else None
            if not isinstance(author, dict):
                continue
            if self.target_user_id != UNKNOWN_USER_ID and author.get("id") == self.target_user_id:
                return author
            if normalize_username(author.get("username")) == self.username:
                return author
        return None

    def _default_exporter(self, username: str, settings: ExportSettings) -> BaseExporter:
        return FileExporter(
            self.config_repository.outputs_dir(),
            username,
            fmt=self.global_config.output_format,
            include_replies=settings.include_replies,
        )


__all__ = [
    "ExportResult",
    "ExportSession",
    "RATE_LIMIT_STATUS",
    "SessionEvent",
    "SessionEventType",
]
