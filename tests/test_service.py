from __future__ import annotations

import pytest

from timeline_export.config import ConfigRepository, ExportSettings
from timeline_export.errors import UnsupportedMessageError
from timeline_export.service import (
    MAX_LOG_ENTRIES,
    BackgroundService,
    InMemorySettingsStore,
    RepositorySettingsStore,
)


def _entry(index: int) -> dict:
    return {"timestamp": f"2024-01-01T00:00:{index % 60:02d}Z", "level": "info", "message": f"m{index}"}


@pytest.fixture
def service() -> BackgroundService:
    return BackgroundService(InMemorySettingsStore())


def test_log_and_get_logs(service: BackgroundService) -> None:
    assert service.handle_message({"type": "log", "entry": _entry(1)}) == {"success": True}
    logs = service.handle_message({"type": "getLogs"})["logs"]
    assert logs == [{"timestamp": "2024-01-01T00:00:01Z", "level": "info", "message": "m1", "data": None}]


def test_log_buffer_keeps_newest_entries(service: BackgroundService) -> None:
    for index in range(MAX_LOG_ENTRIES + 25):
        service.handle_message({"type": "log", "entry": _entry(index)})
    logs = service.handle_message({"type": "getLogs"})["logs"]
    assert len(logs) == MAX_LOG_ENTRIES
    assert logs[0]["message"] == "m25"
    assert logs[-1]["message"] == f"m{MAX_LOG_ENTRIES + 24}"


def test_clear_logs(service: BackgroundService) -> None:
    service.handle_message({"type": "log", "entry": _entry(1)})
    assert service.handle_message({"type": "clearLogs"}) == {"success": True}
    assert service.handle_message({"type": "getLogs"}) == {"logs": []}


def test_export_complete_updates_last_export(service: BackgroundService) -> None:
    assert service.handle_message({"type": "getLastExport"}) == {"last_export": None}
    service.handle_message({"type": "exportComplete", "username": "alice", "count": 12})
    last = service.handle_message({"type": "getLastExport"})["last_export"]
    assert last["username"] == "alice"
    assert last["count"] == 12
    assert last["timestamp"]


def test_settings_defaults_and_partial_save(service: BackgroundService) -> None:
    assert service.handle_message({"type": "getSettings"}) == {
        "minimal_data": True,
        "include_replies": False,
        "max_count": 0,
    }
    assert service.handle_message({"type": "saveSettings", "maxCount": 100}) == {"success": True}
    service.handle_message({"type": "saveSettings", "include_replies": True})
    assert service.handle_message({"type": "getSettings"}) == {
        "minimal_data": True,
        "include_replies": True,
        "max_count": 100,
    }


@pytest.mark.parametrize("raw", [{"type": "launchRockets"}, {"no": "type"}, "getLogs", None])
def test_unknown_message_type_raises(service: BackgroundService, raw) -> None:
    with pytest.raises(UnsupportedMessageError):
        service.handle_message(raw)


def test_dispatch_reports_errors_as_responses(service: BackgroundService) -> None:
    response = service.dispatch({"type": "launchRockets"})
    assert response["success"] is False
    assert "launchRockets" in response["error"]
    invalid = service.dispatch({"type": "saveSettings", "maxCount": -3})
    assert invalid["success"] is False
    assert service.dispatch({"type": "getLogs"}) == {"logs": []}


def test_repository_settings_store_persists(repository: ConfigRepository) -> None:
    service = BackgroundService(RepositorySettingsStore(repository))
    service.handle_message({"type": "saveSettings", "minimalData": False})
    assert repository.load_settings() == ExportSettings(minimal_data=False)
