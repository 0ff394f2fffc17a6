"""CLI command implementations."""

from .errors import errors
from .report import report
from .status import status

__all__ = ["errors", "report", "status"]
