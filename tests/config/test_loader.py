from __future__ import annotations

from pathlib import Path

import pytest

from timeline_export.config.loader import ConfigLocator, ConfigRepository
from timeline_export.config.models import ExportSettings, GlobalConfig, RateLimitPolicy
from timeline_export.errors import ConfigError


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIMELINE_EXPORT_HOME", str(tmp_path))
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    for path in (locator.data_dir, locator.outputs_dir, locator.resume_dir, locator.logs_dir):
        assert path.exists()
        assert path.is_relative_to(tmp_path.resolve())
    assert locator.global_config_path().name == "global_config.yaml"
    assert locator.settings_path().name == "settings.yaml"


def test_global_config_is_created_on_first_load(repository: ConfigRepository) -> None:
    config = repository.load_global_config()
    assert config == GlobalConfig()
    assert repository.locator.global_config_path().exists()


def test_global_config_roundtrip(repository: ConfigRepository) -> None:
    config = GlobalConfig(rate_limit=RateLimitPolicy(batch_size=5), output_format="csv")
    repository.save_global_config(config)
    reloaded = ConfigRepository(repository.locator).load_global_config()
    assert reloaded == config


def test_settings_update_merges_partial_changes(repository: ConfigRepository) -> None:
    assert repository.load_settings() == ExportSettings()
    updated = repository.update_settings(max_count=50, include_replies=None)
    assert updated.max_count == 50
    assert updated.include_replies is False
    again = repository.update_settings(include_replies=True)
    assert again == ExportSettings(include_replies=True, max_count=50)
    assert repository.load_settings() == again


def test_invalid_settings_raise_config_error(repository: ConfigRepository) -> None:
    with pytest.raises(ConfigError):
        repository.update_settings(max_count=-1)


def test_unreadable_config_raises_config_error(repository: ConfigRepository) -> None:
    repository.locator.global_config_path().write_text("rate_limit: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        repository.load_global_config()


def test_non_mapping_config_raises_config_error(repository: ConfigRepository) -> None:
    repository.locator.settings_path().write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        repository.load_settings()


def test_derived_paths_live_under_home(repository: ConfigRepository, home: Path) -> None:
    assert repository.resume_store_path() == (home / "data/resume/resume.db").resolve()
    outputs = repository.outputs_dir()
    assert outputs == (home / "data/outputs").resolve()
    assert outputs.exists()
