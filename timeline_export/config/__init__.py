"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    CompletionPolicy,
    ExportSettings,
    GlobalConfig,
    RateLimitPolicy,
    ResumePolicy,
)

__all__ = [
    "CompletionPolicy",
    "ConfigLocator",
    "ConfigRepository",
    "ExportSettings",
    "GlobalConfig",
    "RateLimitPolicy",
    "ResumePolicy",
]
