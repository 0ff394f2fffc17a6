"""Text helpers shared by id generation and file naming."""

import re

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(name: str, fallback: str = "job") -> str:
    """Lowercase ``name`` and collapse everything but ``[a-z0-9]`` into dashes."""
    return _SLUG_RE.sub("-", name.lower()).strip("-") or fallback
