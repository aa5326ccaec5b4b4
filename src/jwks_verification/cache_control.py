"""``Cache-Control`` parsing for key set lifetimes."""

from __future__ import annotations

from typing import Final

from .errors import MissingMaxAge, NonNumericMaxAge

DEFAULT_MAX_AGE: Final[int] = 60
"""Lifetime callers may fall back to when ``max-age`` is unusable."""

_MAX_AGE: Final[str] = "max-age"


def parse_max_age(cache_control: str) -> int:
    """Return the ``max-age`` directive of a ``Cache-Control`` value, in seconds.

    Directives are comma separated; each is split on ``=`` and trimmed, and the
    name is matched case-insensitively. The first ``max-age`` wins.

    Example:
        >>> parse_max_age("public, Max-Age = 19302, must-revalidate")
        19302

    Raises:
        MissingMaxAge: No ``max-age`` directive.
        NonNumericMaxAge: The value is empty or not a non-negative integer.
    """
    for directive in cache_control.split(","):
        parts = [part.strip() for part in directive.split("=")]
        if parts[0].lower() != _MAX_AGE:
            continue

        raw = parts[1] if len(parts) > 1 else ""
        # int() would also take signs, underscores and non-ASCII digits
        if not (raw.isascii() and raw.isdigit()):
            raise NonNumericMaxAge(f"max-age value {raw!r} is not a non-negative integer")
        return int(raw)

    raise MissingMaxAge(f"No max-age directive in Cache-Control {cache_control!r}")
