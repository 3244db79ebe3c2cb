"""Background message bus: a closed set of typed requests, one response shape each."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

from .config import ConfigRepository, ExportSettings
from .errors import TimelineExportError, UnsupportedMessageError

MAX_LOG_ENTRIES = 500


class _Message(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    type: str


class LogEntry(BaseModel):
    timestamp: str
    level: Literal["debug", "info", "warn", "error"] = "info"
    message: str
    data: Any = None


class LogMessage(_Message):
    entry: LogEntry


class GetLogsMessage(_Message):
    pass


class ClearLogsMessage(_Message):
    pass


class ExportCompleteMessage(_Message):
    username: str
    count: int = Field(ge=0)


class GetLastExportMessage(_Message):
    pass


class GetSettingsMessage(_Message):
    pass


class SaveSettingsMessage(_Message):
    minimal_data: bool | None = Field(default=None, alias="minimalData")
    include_replies: bool | None = Field(default=None, alias="includeReplies")
    max_count: int | None = Field(default=None, alias="maxCount", ge=0)


MESSAGE_MODELS: dict[str, type[_Message]] = {
    "log": LogMessage,
    "getLogs": GetLogsMessage,
    "clearLogs": ClearLogsMessage,
    "exportComplete": ExportCompleteMessage,
    "getLastExport": GetLastExportMessage,
    "getSettings": GetSettingsMessage,
    "saveSettings": SaveSettingsMessage,
}


class SettingsStore(Protocol):
    def get(self) -> ExportSettings: ...

    def set(self, partial: dict[str, Any]) -> None: ...


class InMemorySettingsStore:
    """Settings held for the lifetime of the process."""

    def __init__(self, settings: ExportSettings | None = None) -> None:
        self._settings = settings or ExportSettings()

    def get(self) -> ExportSettings:
        return self._settings

    def set(self, partial: dict[str, Any]) -> None:
        merged = {**self._settings.model_dump(), **partial}
        self._settings = ExportSettings.model_validate(merged)


class RepositorySettingsStore:
    """Settings persisted through :class:`ConfigRepository`."""

    def __init__(self, repository: ConfigRepository) -> None:
        self.repository = repository

    def get(self) -> ExportSettings:
        return self.repository.load_settings()

    def set(self, partial: dict[str, Any]) -> None:
        self.repository.update_settings(**partial)


class BackgroundService:
    """Owns the log buffer and last-export summary; answers bus requests."""

    def __init__(
        self,
        settings_store: SettingsStore,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings_store = settings_store
        self.logs: list[dict[str, Any]] = []
        self.last_export: dict[str, Any] | None = None
        self.logger = logger or structlog.get_logger("timeline_export.service").bind(
            component="background"
        )

    def parse_message(self, raw: Any) -> _Message:
        message_type = raw.get("type") if isinstance(raw, dict) else None
        model = MESSAGE_MODELS.get(message_type) if isinstance(message_type, str) else None
        if model is None:
            raise UnsupportedMessageError(message_type)
        return model.model_validate(raw)

    def handle_message(self, raw: Any) -> dict[str, Any]:
        """Answer one request. Unknown types raise :class:`UnsupportedMessageError`."""

        message = raw if isinstance(raw, _Message) else self.parse_message(raw)
        if isinstance(message, LogMessage):
            self._add_log(message.entry.model_dump(mode="json"))
            return {"success": True}
        if isinstance(message, GetLogsMessage):
            return {"logs": list(self.logs)}
        if isinstance(message, ClearLogsMessage):
            self.logs = []
            return {"success": True}
        if isinstance(message, ExportCompleteMessage):
            self.last_export = {
                "username": message.username,
                "count": message.count,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            self.logger.info("export_complete", username=message.username, count=message.count)
            return {"success": True}
        if isinstance(message, GetLastExportMessage):
            return {"last_export": self.last_export}
        if isinstance(message, GetSettingsMessage):
            return self.settings_store.get().model_dump()
        if isinstance(message, SaveSettingsMessage):
            partial = message.model_dump(exclude={"type"}, exclude_none=True)
            self.settings_store.set(partial)
            return {"success": True}
        raise UnsupportedMessageError(getattr(message, "type", None))

    def dispatch(self, raw: Any) -> dict[str, Any]:
        """Boundary entry point: failures become ``{"success": False, "error": ...}``."""

        try:
            return self.handle_message(raw)
        except (TimelineExportError, ValidationError) as exc:
            self.logger.warning("message_failed", error=str(exc))
            return {"success": False, "error": str(exc)}

    def _add_log(self, entry: dict[str, Any]) -> None:
        self.logs.append(entry)
        if len(self.logs) > MAX_LOG_ENTRIES:
            self.logs = self.logs[-MAX_LOG_ENTRIES:]


__all__ = [
    "BackgroundService",
    "InMemorySettingsStore",
    "LogEntry",
    "MAX_LOG_ENTRIES",
    "MESSAGE_MODELS",
    "RepositorySettingsStore",
    "SettingsStore",
]
