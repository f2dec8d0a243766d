"""
Deterministic object content.

Object bodies are pseudorandom bytes derived from a (length, seed) pair.
The same pair always produces the same bytes, so a created object can be
verified by digest alone, without keeping its body in memory.
"""

from __future__ import annotations

import hashlib
import io
import random
from typing import BinaryIO, Optional, Tuple

from bucketprobe.errors import ConfigurationError

DEFAULT_CONTENT_LENGTH = 4096
DEFAULT_SEED = 0

MAX_CONTENT_LENGTH = 2**63 - 1
MIN_SEED = -(2**63)
MAX_SEED = 2**63 - 1

# Must stay a multiple of 4 and must never change: the byte stream for a
# seed is defined as successive randbytes(CHUNK_SIZE) blocks.
CHUNK_SIZE = 64 * 1024


class ContentReader(io.RawIOBase):
    """Seekable read-only stream over generated content"""

    def __init__(self, length: int, seed: int):
        super().__init__()
        self.length = length
        self.seed = seed
        self._pos = 0
        self._rng: Optional[random.Random] = None
        self._next_chunk = 0
        self._chunk_index: Optional[int] = None
        self._chunk = b""

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self.length + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if pos < 0:
            raise ValueError(f"negative seek position {pos}")
        self._pos = pos
        return pos

    def readinto(self, b) -> int:
        if self._pos >= self.length:
            return 0
        index, offset = divmod(self._pos, CHUNK_SIZE)
        self._load_chunk(index)
        n = min(len(b), CHUNK_SIZE - offset, self.length - self._pos)
        b[:n] = self._chunk[offset : offset + n]
        self._pos += n
        return n

    def _load_chunk(self, index: int) -> None:
        if index == self._chunk_index:
            return
        if self._rng is None or index < self._next_chunk:
            # Unsigned so that seeds of opposite sign give different streams
            self._rng = random.Random(self.seed & 0xFFFFFFFFFFFFFFFF)
            self._next_chunk = 0
        while self._next_chunk < index:
            self._rng.randbytes(CHUNK_SIZE)
            self._next_chunk += 1
        self._chunk = self._rng.randbytes(CHUNK_SIZE)
        self._chunk_index = index
        self._next_chunk = index + 1


class ContentSource:
    """
    Generator and digest computer for one (length, seed) pair.

    Raises ConfigurationError for a length or seed that cannot be
    represented as a signed 64-bit integer (or a negative length).
    """

    def __init__(self, length: int = DEFAULT_CONTENT_LENGTH, seed: int = DEFAULT_SEED):
        if not isinstance(length, int) or length < 0 or length > MAX_CONTENT_LENGTH:
            raise ConfigurationError(
                f"content length must be between 0 and {MAX_CONTENT_LENGTH}, got {length!r}"
            )
        if not isinstance(seed, int) or seed < MIN_SEED or seed > MAX_SEED:
            raise ConfigurationError(
                f"random seed must be a signed 64-bit integer, got {seed!r}"
            )
        self.length = length
        self.seed = seed

    def open(self) -> BinaryIO:
        return io.BufferedReader(ContentReader(self.length, self.seed), CHUNK_SIZE)

    def digest(self) -> Tuple[str, int]:
        """SHA-256 hex digest and length of the generated content"""
        with self.open() as reader:
            return digest_stream(reader)

    def __repr__(self) -> str:
        return f"ContentSource(length={self.length}, seed={self.seed})"


def digest_stream(reader, chunk_size: int = CHUNK_SIZE) -> Tuple[str, int]:
    """Digest a readable stream without holding it in memory"""
    h = hashlib.sha256()
    total = 0
    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        h.update(chunk)
        total += len(chunk)
    return h.hexdigest(), total
