"""Configuration loading helpers for timeline-export."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import ExportSettings, GlobalConfig

GLOBAL_CONFIG_FILENAME = "global_config.yaml"
SETTINGS_FILENAME = "settings.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unreadable configuration file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    outputs_dir: Path | None = None
    resume_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("TIMELINE_EXPORT_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.outputs_dir = (self.data_dir / "outputs").resolve()
        self.resume_dir = (self.data_dir / "resume").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.outputs_dir, self.resume_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            global_cfg = self._validate(GlobalConfig, _read_file(path), path)
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> None:
        path = self.locator.global_config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._global_cache = config

    # ------------------------------------------------------------------
    # Export settings helpers
    # ------------------------------------------------------------------
    def load_settings(self) -> ExportSettings:
        path = self.locator.settings_path()
        if not path.exists():
            return ExportSettings()
        return self._validate(ExportSettings, _read_file(path), path)

    def save_settings(self, settings: ExportSettings) -> Path:
        path = self.locator.settings_path()
        _write_file(path, settings.model_dump(mode="json"))
        return path

    def update_settings(self, **changes: object) -> ExportSettings:
        """Merge non-None changes into the stored settings and persist them."""

        current = self.load_settings().model_dump()
        current.update({key: value for key, value in changes.items() if value is not None})
        updated = self._validate(ExportSettings, current, self.locator.settings_path())
        self.save_settings(updated)
        return updated

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------
    def resume_store_path(self) -> Path:
        return self.load_global_config().resume.resolved_store_path(self.locator.project_root)

    def outputs_dir(self) -> Path:
        outputs = self.load_global_config().outputs_dir
        if not outputs.is_absolute():
            outputs = (self.locator.project_root / outputs).resolve()
        outputs.mkdir(parents=True, exist_ok=True)
        return outputs

    @staticmethod
    def _validate(model, payload: dict, path: Path):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


__all__ = ["ConfigLocator", "ConfigRepository"]
