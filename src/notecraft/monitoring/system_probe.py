"""Process and host resource probes.

Provides a ``SystemProbe`` class with the "psutil first, /proc fallback"
pattern for the figures the monitoring layer needs:

- Process memory usage (RSS), sampled at job start and end
- Host load average and CPU count, reported in performance summaries
"""

from __future__ import annotations

import os
import platform
import time

import psutil

from notecraft.core.logging import get_logger

_logger = get_logger("monitoring.system_probe")

_PROCESS_STARTED = time.monotonic()


class SystemProbe:
    """System resource probes.

    Each method returns ``None`` when every probe fails; callers treat a
    missing sample as "unknown" rather than zero.
    """

    @staticmethod
    def get_memory_mb() -> float | None:
        """Get current process RSS memory in MB.

        Uses ``psutil.Process().memory_info().rss``, falls back to reading
        ``VmRSS`` from ``/proc/self/status``.

        Returns:
            RSS in megabytes, or ``None`` when all probes fail.
        """
        try:
            rss_bytes: int = psutil.Process().memory_info().rss
            return rss_bytes / (1024 * 1024)
        except (psutil.Error, OSError):
            _logger.debug("psutil_memory_probe_failed", exc_info=True)
        # Fallback: /proc/self/status (Linux only)
        try:
            with open("/proc/self/status") as f:
                for line in f:
                    if line.startswith("VmRSS:"):
                        return int(line.split()[1]) / 1024  # kB -> MB
        except (OSError, ValueError):
            pass
        _logger.debug("memory_probe_failed")
        return None

    @staticmethod
    def get_load_average() -> list[float] | None:
        """1, 5 and 15 minute load averages."""
        try:
            return [round(v, 2) for v in psutil.getloadavg()]
        except (psutil.Error, OSError, AttributeError):
            _logger.debug("load_average_probe_failed", exc_info=True)
            return None

    @staticmethod
    def get_cpu_count() -> int | None:
        return psutil.cpu_count() or os.cpu_count()

    @classmethod
    def snapshot(cls) -> dict[str, object]:
        """Current process and host figures for report summaries."""
        memory_mb = cls.get_memory_mb()
        return {
            "memory_mb": round(memory_mb, 2) if memory_mb is not None else None,
            "load_average": cls.get_load_average(),
            "cpu_count": cls.get_cpu_count(),
            "uptime_seconds": round(time.monotonic() - _PROCESS_STARTED, 3),
            "python_version": platform.python_version(),
            "platform": platform.platform(),
        }
