#!/usr/bin/env python3
"""
Size parsing and formatting tests
"""

import pytest

from bucketprobe.errors import ConfigurationError
from bucketprobe.units import format_bytes, format_elapsed, parse_size


@pytest.mark.parametrize(
    "text,expected",
    [
        ("0", 0),
        ("4096", 4096),
        ("4K", 4096),
        ("4k", 4096),
        ("4KB", 4096),
        ("4KiB", 4096),
        ("3.5M", 3670016),
        ("1G", 1 << 30),
        ("5G", 5 * (1 << 30)),
        ("2T", 2 << 40),
        ("12B", 12),
    ],
)
def test_parse_size(text, expected):
    assert parse_size(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "-1", "4X", "1.5.2M", "K"])
def test_parse_size_rejects(text):
    with pytest.raises(ConfigurationError):
        parse_size(text)


@pytest.mark.parametrize(
    "n,expected",
    [(0, "0B"), (1, "1B"), (1023, "1023B"), (4096, "4K"), (3670016, "3.5M"), (5 * (1 << 30), "5G")],
)
def test_format_bytes(n, expected):
    assert format_bytes(n) == expected


@pytest.mark.parametrize(
    "seconds,expected",
    [(0.25, "250ms"), (0, "0ms"), (5.9, "5s"), (65, "1m5s"), (3725, "1h2m5s")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected
