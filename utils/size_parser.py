"""Parse human readable file sizes ("1.4 GiB", "700MB", 734003200) into bytes."""

import re
from typing import Any

_UNITS = {
    "b": 1,
    "bytes": 1,
    "kb": 1000,
    "mb": 1000 ** 2,
    "gb": 1000 ** 3,
    "tb": 1000 ** 4,
    "kib": 1024,
    "mib": 1024 ** 2,
    "gib": 1024 ** 3,
    "tib": 1024 ** 4,
}

_SIZE_RE = re.compile(r"^\s*([0-9]+(?:[.,][0-9]+)?)\s*([a-zA-Z]*)\s*$")


def parse_size(value: Any) -> int | None:
    """
    Convert a size value to bytes.

    Torrent sites mostly mean binary units when they write "GB", but the
    decimal/binary distinction is kept as written. Returns None for anything
    that cannot be read as a size.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None

    match = _SIZE_RE.match(str(value))
    if not match:
        return None
    number = float(match.group(1).replace(",", "."))
    unit = match.group(2).lower() or "b"
    multiplier = _UNITS.get(unit) or _UNITS.get(unit + "b")
    if multiplier is None:
        return None
    return int(number * multiplier)
