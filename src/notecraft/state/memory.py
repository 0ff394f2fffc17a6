"""In-memory report store for testing.

Provides a ReportStore that keeps everything in dicts without filesystem I/O.
"""

import copy
from typing import Any

from notecraft.state.base import ReportStore


class MemoryReportStore(ReportStore):
    """In-memory report store for testing."""

    def __init__(self) -> None:
        self.error_reports: dict[str, dict[str, Any]] = {}
        self.snapshots: list[dict[str, Any]] = []

    async def save_error_report(self, error_id: str, report: dict[str, Any]) -> str:
        self.error_reports[error_id] = copy.deepcopy(report)
        return f"memory://errors/{error_id}"

    async def save_snapshot(self, report: dict[str, Any]) -> str:
        self.snapshots.append(copy.deepcopy(report))
        return f"memory://monitoring/{len(self.snapshots)}"

    async def load_latest(self) -> dict[str, Any] | None:
        return copy.deepcopy(self.snapshots[-1]) if self.snapshots else None

    async def list_error_reports(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self.error_reports.values()]
