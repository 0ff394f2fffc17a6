"""JSON file-based report store.

Snapshots go to ``{monitoring_dir}/monitoring-report-<timestamp>.json`` with a
copy in ``{monitoring_dir}/latest-report.json``; error reports go to
``{errors_dir}/error-<error id>.json``.
"""

import json
from pathlib import Path
from typing import Any

from notecraft.core.constants import LATEST_REPORT_FILENAME
from notecraft.core.logging import get_logger
from notecraft.state.base import ReportStore
from notecraft.utils.time import file_timestamp

_logger = get_logger("state.json")


def _write_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON atomically using temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_suffix(".json.tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    temp_file.replace(path)


def _read_json(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        _logger.warning("report.unreadable", path=str(path), error=str(e))
        return None
    return data if isinstance(data, dict) else None


class JsonReportStore(ReportStore):
    """Stores reports as JSON files on local disk.

    Directories are created on first write so read-only consumers never
    create empty output trees.
    """

    def __init__(self, monitoring_dir: Path, errors_dir: Path):
        """Initialize JSON store.

        Args:
            monitoring_dir: Directory for snapshots and the latest pointer.
            errors_dir: Directory for per-error reports.
        """
        self.monitoring_dir = Path(monitoring_dir)
        self.errors_dir = Path(errors_dir)

    @property
    def latest_path(self) -> Path:
        return self.monitoring_dir / LATEST_REPORT_FILENAME

    def _error_file(self, error_id: str) -> Path:
        # Sanitize error_id for filesystem
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in error_id)
        return self.errors_dir / f"error-{safe_id}.json"

    async def save_error_report(self, error_id: str, report: dict[str, Any]) -> str:
        path = self._error_file(error_id)
        _write_atomic(path, report)
        return str(path)

    async def save_snapshot(self, report: dict[str, Any]) -> str:
        path = self.monitoring_dir / f"monitoring-report-{file_timestamp()}.json"
        _write_atomic(path, report)
        _write_atomic(self.latest_path, report)
        return str(path)

    async def load_latest(self) -> dict[str, Any] | None:
        if not self.latest_path.exists():
            return None
        return _read_json(self.latest_path)

    async def list_error_reports(self) -> list[dict[str, Any]]:
        if not self.errors_dir.is_dir():
            return []
        reports = []
        for path in sorted(self.errors_dir.glob("error-*.json")):
            data = _read_json(path)
            if data is not None:
                reports.append(data)
        return sorted(reports, key=lambda r: str(r.get("error", {}).get("created_at", "")))
