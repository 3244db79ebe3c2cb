"""Exporter Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BaseExporter(ABC):
    """Uniform exporter contract for consolidated timeline exports."""

    meta: dict | None = None

    def set_meta(self, meta: dict) -> None:
        """Attach export-level metadata written alongside the items."""

        self.meta = meta

    @abstractmethod
    def export(self, record: dict) -> None:
        """Persist a single item."""

    def export_many(self, records: Iterable[dict]) -> None:
        for record in records:
            self.export(record)

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered data to destination."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["BaseExporter"]
