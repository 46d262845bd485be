from __future__ import annotations

import re

UNIT_ID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
_FULL_UNIT_ID = re.compile(rf"^{UNIT_ID_PATTERN.pattern}$")


def extract_unit_id(raw: str | None) -> str | None:
    """Return the first canonical unit identifier found in scanner input.

    Scanners may wrap the code in control characters, prefixes, or a full
    passport URL (``https://host/p/<uuid>``), so the identifier is searched
    for anywhere in the input rather than matched against the whole string.
    The result is lowercased; ``None`` means nothing usable was scanned.
    """
    if not raw:
        return None
    match = UNIT_ID_PATTERN.search(raw)
    if match is None:
        return None
    return match.group(0).lower()


def normalize_unit_id(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed.lower()


def is_unit_id(value: str) -> bool:
    return bool(_FULL_UNIT_ID.match(value))
