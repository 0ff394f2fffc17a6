"""Shared utilities."""

from notecraft.utils.text import slugify
from notecraft.utils.time import epoch_ms, file_timestamp, utc_now

__all__ = ["epoch_ms", "file_timestamp", "slugify", "utc_now"]
