"""File based exporter supporting JSON/JSONL/CSV."""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime, timezone
from pathlib import Path

from .base import BaseExporter


class FileExporter(BaseExporter):
    """Write a consolidated export to a local file.

    ``json`` produces one ``{"meta": ..., "items": [...]}`` document on close;
    ``jsonl`` streams one item per line; ``csv`` flattens nested fields to JSON
    strings under the union of all item keys.
    """

    def __init__(
        self,
        output_dir: Path,
        username: str,
        fmt: str = "json",
        run_tag: str | None = None,
        include_replies: bool = False,
    ) -> None:
        self.output_dir = output_dir
        self.username = username
        self.format = fmt
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", username.strip()) or "unknown"
        kind = "replies" if include_replies else "posts"
        self.path = self.output_dir / f"{slug}-{kind}-{self.run_tag}.{self._extension}"
        self._records: list[dict] = []
        self._file = self.path.open("w", encoding="utf-8", newline="") if fmt == "jsonl" else None
        self._closed = False

    @property
    def _extension(self) -> str:
        if self.format in ("json", "jsonl", "csv"):
            return self.format
        raise ValueError(f"Unsupported export format: {self.format}")

    def export(self, record: dict) -> None:
        if self._file is not None:
            json.dump(record, self._file, ensure_ascii=False)
            self._file.write("\n")
        else:
            self._records.append(record)

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._file is not None:
            self._file.close()
            if self.meta is not None:
                meta_path = self.path.with_suffix(".meta.json")
                meta_path.write_text(json.dumps(self.meta, ensure_ascii=False, indent=2), encoding="utf-8")
            return
        if self.format == "json":
            payload = {"meta": self.meta or {}, "items": self._records}
            self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        else:
            self._write_csv()

    def _write_csv(self) -> None:
        fieldnames: list[str] = []
        for record in self._records:
            for key in record:
                if key not in fieldnames:
                    fieldnames.append(key)
        with self.path.open("w", encoding="utf-8", newline="") as stream:
            writer = csv.DictWriter(stream, fieldnames=fieldnames)
            writer.writeheader()
            for record in self._records:
                writer.writerow(
                    {
                        key: json.dumps(value, ensure_ascii=False)
                        if isinstance(value, (dict, list))
                        else value
                        for key, value in record.items()
                    }
                )


__all__ = ["FileExporter"]
