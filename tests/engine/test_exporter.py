from __future__ import annotations

import csv
import json

import pytest

from timeline_export.engine.exporter import FileExporter


def test_file_exporter_json_document(tmp_path) -> None:
    exporter = FileExporter(tmp_path, "@Alice", "json", run_tag="test")
    exporter.set_meta({"username": "alice", "collected_count": 2})
    exporter.export_many([{"id": "1"}, {"id": "2"}])
    exporter.flush()
    exporter.close()
    assert exporter.path == tmp_path / "_Alice-posts-test.json"
    payload = json.loads(exporter.path.read_text(encoding="utf-8"))
    assert payload["meta"]["collected_count"] == 2
    assert [item["id"] for item in payload["items"]] == ["1", "2"]


def test_file_exporter_jsonl_streams_items_and_writes_meta(tmp_path) -> None:
    exporter = FileExporter(tmp_path, "alice", "jsonl", run_tag="test", include_replies=True)
    exporter.set_meta({"username": "alice"})
    exporter.export({"id": "1", "text": "héllo"})
    exporter.close()
    exporter.close()
    path = tmp_path / "alice-replies-test.jsonl"
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert lines == [{"id": "1", "text": "héllo"}]
    meta = json.loads((tmp_path / "alice-replies-test.meta.json").read_text(encoding="utf-8"))
    assert meta == {"username": "alice"}


def test_file_exporter_csv_flattens_nested_values(tmp_path) -> None:
    exporter = FileExporter(tmp_path, "alice", "csv", run_tag="test")
    exporter.export({"id": "1", "author": {"username": "alice"}})
    exporter.export({"id": "2", "hashtags": ["py"]})
    exporter.close()
    with exporter.path.open(encoding="utf-8", newline="") as stream:
        rows = list(csv.DictReader(stream))
    assert list(rows[0].keys()) == ["id", "author", "hashtags"]
    assert json.loads(rows[0]["author"]) == {"username": "alice"}
    assert rows[1]["author"] == ""
    assert json.loads(rows[1]["hashtags"]) == ["py"]


def test_file_exporter_rejects_unknown_format(tmp_path) -> None:
    with pytest.raises(ValueError):
        FileExporter(tmp_path, "alice", "txt", run_tag="test")
