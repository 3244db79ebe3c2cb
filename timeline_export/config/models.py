"""Pydantic models used across timeline-export configuration flow."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class RateLimitPolicy(BaseModel):
    """Tuning values for header-driven pacing and cooldown triggers."""

    default_limit: int = 150
    default_remaining: int = 150
    # Proactive break every N observed responses, regardless of headers
    batch_size: int = 20
    # Reactive break once remaining is at or below this mark
    low_remaining_threshold: int = 9
    initial_delay_ms: float = 2500.0
    min_delay_ms: float = 3000.0
    max_delay_ms: float = 8000.0
    # Remaining/limit fraction below which the delay starts ramping up
    pressure_threshold: float = 0.5
    batch_cooldown_ms: int = 180_000
    reset_grace_ms: int = 10_000

    @model_validator(mode="after")
    def _validate_policy(self) -> "RateLimitPolicy":
        if self.default_limit <= 0:
            raise ValueError("default_limit must be > 0")
        if not 0 <= self.default_remaining <= self.default_limit:
            raise ValueError("default_remaining must be within [0, default_limit]")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.low_remaining_threshold < 0:
            raise ValueError("low_remaining_threshold must be >= 0")
        if self.initial_delay_ms < 0 or self.min_delay_ms < 0:
            raise ValueError("Delay values must be non-negative")
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        if not 0 < self.pressure_threshold <= 1:
            raise ValueError("pressure_threshold must be within (0, 1]")
        if self.batch_cooldown_ms < 0 or self.reset_grace_ms < 0:
            raise ValueError("Cooldown durations must be non-negative")
        return self


class CompletionPolicy(BaseModel):
    """Parameters of the "looks done" heuristic."""

    idle_threshold_ms: int = 30_000
    min_scroll_count: int = 10

    @model_validator(mode="after")
    def _validate_non_negative(self) -> "CompletionPolicy":
        if self.idle_threshold_ms < 0:
            raise ValueError("idle_threshold_ms must be >= 0")
        if self.min_scroll_count < 0:
            raise ValueError("min_scroll_count must be >= 0")
        return self


class ResumePolicy(BaseModel):
    """Resume payload retention and location."""

    max_age_ms: int = 6 * 60 * 60 * 1000
    store_path: Path = Field(default=Path("data/resume/resume.db"))

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("max_age_ms")
    @classmethod
    def _positive_age(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_age_ms must be > 0")
        return value

    def resolved_store_path(self, base_dir: Path) -> Path:
        """Return resume store path relative to project root."""

        if not self.store_path.is_absolute():
            return (base_dir / self.store_path).resolve()
        return self.store_path


class ExportSettings(BaseModel):
    """User-facing export options persisted by the settings store."""

    minimal_data: bool = True
    include_replies: bool = False
    # 0 means unlimited
    max_count: int = 0

    @field_validator("max_count")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_count must be >= 0")
        return value


class GlobalConfig(BaseModel):
    """Global controls shared across export sessions."""

    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)
    completion: CompletionPolicy = Field(default_factory=CompletionPolicy)
    resume: ResumePolicy = Field(default_factory=ResumePolicy)
    output_format: str = "json"
    outputs_dir: Path = Field(default=Path("data/outputs"))

    @field_validator("outputs_dir", mode="before")
    @classmethod
    def _coerce_dir(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("json", "jsonl", "csv"):
            raise ValueError(f"Unsupported output format: {value}")
        return value


__all__ = [
    "CompletionPolicy",
    "ExportSettings",
    "GlobalConfig",
    "RateLimitPolicy",
    "ResumePolicy",
]
