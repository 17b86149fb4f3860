"""Description normalization used as the matching key for category learning."""

from __future__ import annotations

import re

_DISALLOWED_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_description(description: str | None) -> str:
    """Reduce ``description`` to lower-case ASCII alphanumerics and single spaces.

    ``"STARBUCKS #1234, Seattle"`` becomes ``"starbucks 1234 seattle"``. Returns
    ``""`` for ``None`` or empty input; never raises.
    """

    if not description:
        return ""
    s = _DISALLOWED_RE.sub("", description.lower())
    return _WHITESPACE_RE.sub(" ", s).strip()


__all__ = ["normalize_description"]
