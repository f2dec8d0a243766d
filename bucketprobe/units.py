"""Human-readable byte sizes and durations."""

from __future__ import annotations

import re

from bucketprobe.errors import ConfigurationError

BYTE_UNITS = (
    ("T", 1 << 40),
    ("G", 1 << 30),
    ("M", 1 << 20),
    ("K", 1 << 10),
    ("B", 1),
)

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMGT](?:I?B)?|B)$", re.IGNORECASE)


def parse_size(text: str) -> int:
    """
    Parse a byte count ("4096") or binary quantity ("4K", "3.5MiB", "1GB").

    Units are binary: K, KB and KiB all mean 1024 bytes.
    """
    text = str(text).strip()
    if text.isdigit():
        return int(text)
    m = _SIZE_RE.match(text)
    if not m:
        raise ConfigurationError(
            f"invalid size {text!r}: expected a byte count or a number with unit B, K, M, G or T"
        )
    value, unit = m.groups()
    multiplier = dict(BYTE_UNITS)[unit[0].upper()]
    return int(float(value) * multiplier)


def format_bytes(n: int) -> str:
    """Format a byte count like "4K", "3.5M" or "0B" """
    if n == 0:
        return "0B"
    for unit, size in BYTE_UNITS:
        if n >= size:
            value = f"{n / size:.1f}"
            if value.endswith(".0"):
                value = value[:-2]
            return value + unit
    return f"{n}B"


def format_elapsed(seconds: float) -> str:
    """Format a duration as XhYmZs, YmZs, Zs or Nms"""
    ms = int(seconds * 1000)
    hours, rest = divmod(ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs = rest // 1000
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    if secs:
        return f"{secs}s"
    return f"{ms}ms"
