"""
Key lists and per-key results.

A KeyList is an ordered, named, countable sequence of unique candidate
keys. RangeKeyList derives keys from code point ranges without
materialising them, so lists covering tens of thousands of code points
cost only their range table. SequenceKeyList wraps explicit strings such
as emoji sequences or malformed encodings.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

Range = Tuple[int, int]


class KeyList:
    """Ordered, named, countable sequence of keys"""

    name: str

    @property
    def count(self) -> int:
        raise NotImplementedError

    def key(self, index: int) -> str:
        raise NotImplementedError

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[str]:
        for i in range(self.count):
            yield self.key(i)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.count:
            raise IndexError(f"index {index} out of range for {self.name} ({self.count} keys)")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, count={self.count})"


def merge_ranges(ranges: Iterable[Range]) -> List[Range]:
    """Sort and coalesce inclusive (lo, hi) ranges"""
    merged: List[Range] = []
    for lo, hi in sorted(ranges):
        if lo > hi:
            raise ValueError(f"invalid range {lo:#x}..{hi:#x}")
        if merged and lo <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], hi))
        else:
            merged.append((lo, hi))
    return merged


class RangeKeyList(KeyList):
    """
    One key per code point in a set of inclusive ranges.

    template is a str.format pattern applied to the character, e.g.
    "unicode/{}.bin"; the default is the bare character.
    """

    def __init__(self, name: str, ranges: Iterable[Range], template: str = "{}"):
        self.name = name
        self.template = template
        self.ranges = tuple(merge_ranges(ranges))
        self._offsets = []
        total = 0
        for lo, hi in self.ranges:
            self._offsets.append(total)
            total += hi - lo + 1
        self._count = total

    @property
    def count(self) -> int:
        return self._count

    def code_point(self, index: int) -> int:
        self._check_index(index)
        i = bisect.bisect_right(self._offsets, index) - 1
        return self.ranges[i][0] + (index - self._offsets[i])

    def key(self, index: int) -> str:
        return self.template.format(chr(self.code_point(index)))


class SequenceKeyList(KeyList):
    """Explicit keys, de-duplicated with first occurrence kept"""

    def __init__(self, name: str, keys: Sequence[str], template: str = "{}"):
        self.name = name
        self.template = template
        self.keys = tuple(dict.fromkeys(keys))

    @property
    def count(self) -> int:
        return len(self.keys)

    def key(self, index: int) -> str:
        self._check_index(index)
        return self.template.format(self.keys[index])


@dataclass
class KeyResult:
    """Outcome of probing one key from a KeyList"""

    list: KeyList
    index: int
    key: str
    error: Optional[BaseException] = None

    def __post_init__(self):
        if not 0 <= self.index < self.list.count:
            raise ValueError(f"index {self.index} out of range for {self.list.name}")

    @property
    def success(self) -> bool:
        return self.error is None

    def as_expected(self, expect_failure: bool) -> bool:
        """Whether the outcome matches the case polarity"""
        return self.success != expect_failure

    def pretty(self) -> str:
        where = f"{self.key!r} ({self.index + 1} of {self.list.count} from {self.list.name})"
        if self.success:
            return f"{where} succeeded"
        message = str(self.error).replace("\n", "\\n")
        return f"{where} failed: {message}"
