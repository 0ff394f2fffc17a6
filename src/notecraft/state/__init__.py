"""Report persistence backends."""

from notecraft.state.base import ReportStore
from notecraft.state.json_backend import JsonReportStore
from notecraft.state.memory import MemoryReportStore

__all__ = ["ReportStore", "JsonReportStore", "MemoryReportStore"]
