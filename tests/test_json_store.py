"""Tests for the JSON and in-memory report stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from notecraft.state import JsonReportStore, MemoryReportStore


@pytest.fixture
def json_store(tmp_path: Path) -> JsonReportStore:
    return JsonReportStore(tmp_path / "monitoring", tmp_path / "errors")


class TestJsonReportStore:
    """Tests for JsonReportStore."""

    def test_directories_created_lazily(self, json_store: JsonReportStore):
        assert not json_store.monitoring_dir.exists()
        assert not json_store.errors_dir.exists()

    @pytest.mark.asyncio
    async def test_save_error_report(self, json_store):
        location = await json_store.save_error_report(
            "research-job-rate_limit_error-1-abc123", {"error": {"id": "x"}}
        )
        path = Path(location)
        assert path.name == "error-research-job-rate_limit_error-1-abc123.json"
        assert json.loads(path.read_text()) == {"error": {"id": "x"}}
        assert not list(json_store.errors_dir.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_error_id_is_sanitized_for_filesystem(self, json_store):
        location = await json_store.save_error_report("../../etc/passwd", {"error": {}})
        assert Path(location).parent == json_store.errors_dir

    @pytest.mark.asyncio
    async def test_save_snapshot_writes_latest_pointer(self, json_store):
        location = await json_store.save_snapshot({"workflow": {"status": "running"}})
        assert Path(location).name.startswith("monitoring-report-")
        assert json_store.latest_path.exists()

        await json_store.save_snapshot({"workflow": {"status": "completed"}})
        latest = await json_store.load_latest()
        assert latest == {"workflow": {"status": "completed"}}
        assert len(list(json_store.monitoring_dir.glob("monitoring-report-*.json"))) == 2

    @pytest.mark.asyncio
    async def test_load_latest_missing(self, json_store):
        assert await json_store.load_latest() is None

    @pytest.mark.asyncio
    async def test_load_latest_corrupt(self, json_store):
        json_store.monitoring_dir.mkdir(parents=True)
        json_store.latest_path.write_text("{not json")
        assert await json_store.load_latest() is None

    @pytest.mark.asyncio
    async def test_list_error_reports_sorted_by_creation(self, json_store):
        await json_store.save_error_report("b", {"error": {"created_at": "2025-01-15T10:05:00"}})
        await json_store.save_error_report("a", {"error": {"created_at": "2025-01-15T10:10:00"}})
        await json_store.save_error_report("c", {"error": {"created_at": "2025-01-15T10:00:00"}})
        (json_store.errors_dir / "error-broken.json").write_text("[")

        reports = await json_store.list_error_reports()
        assert [r["error"]["created_at"][-5:] for r in reports] == ["00:00", "05:00", "10:00"]

    @pytest.mark.asyncio
    async def test_list_error_reports_without_directory(self, json_store):
        assert await json_store.list_error_reports() == []


class TestMemoryReportStore:
    """Tests for MemoryReportStore."""

    @pytest.mark.asyncio
    async def test_reports_are_copied(self):
        store = MemoryReportStore()
        report = {"error": {"id": "e1"}}
        await store.save_error_report("e1", report)
        report["error"]["id"] = "changed"
        assert (await store.list_error_reports())[0]["error"]["id"] == "e1"

    @pytest.mark.asyncio
    async def test_latest_snapshot(self):
        store = MemoryReportStore()
        assert await store.load_latest() is None
        await store.save_snapshot({"n": 1})
        await store.save_snapshot({"n": 2})
        assert await store.load_latest() == {"n": 2}
