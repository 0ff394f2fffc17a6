"""Abstract base for report stores."""

from abc import ABC, abstractmethod
from typing import Any


class ReportStore(ABC):
    """Abstract base class for report persistence.

    Implementations keep per-error audit reports and point-in-time
    monitoring snapshots. Reports are plain JSON-compatible dicts.
    """

    @abstractmethod
    async def save_error_report(self, error_id: str, report: dict[str, Any]) -> str:
        """Persist the audit report for one handled error.

        Args:
            error_id: Id of the error the report describes.
            report: JSON-compatible report body.

        Returns:
            Location of the stored report.
        """
        ...

    @abstractmethod
    async def save_snapshot(self, report: dict[str, Any]) -> str:
        """Persist a monitoring snapshot and overwrite the latest pointer.

        Args:
            report: JSON-compatible snapshot body.

        Returns:
            Location of the timestamped snapshot.
        """
        ...

    @abstractmethod
    async def load_latest(self) -> dict[str, Any] | None:
        """Load the most recent snapshot.

        Returns:
            The snapshot, or None if none has been saved.
        """
        ...

    @abstractmethod
    async def list_error_reports(self) -> list[dict[str, Any]]:
        """List all stored error reports, oldest first."""
        ...
