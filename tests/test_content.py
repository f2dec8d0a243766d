#!/usr/bin/env python3
"""
Deterministic content generation tests
"""

import hashlib
import io

import pytest

from bucketprobe.content import CHUNK_SIZE, MAX_SEED, MIN_SEED, ContentSource, digest_stream
from bucketprobe.errors import ConfigurationError


def read_all(source):
    with source.open() as reader:
        return reader.read()


def test_same_seed_same_bytes():
    """Two sources with the same length and seed produce identical bytes"""
    a = read_all(ContentSource(10_000, 42))
    b = read_all(ContentSource(10_000, 42))
    assert len(a) == 10_000
    assert a == b


def test_different_seeds_differ():
    assert read_all(ContentSource(256, 1)) != read_all(ContentSource(256, 2))
    assert read_all(ContentSource(256, 1)) != read_all(ContentSource(256, -1))


def test_shorter_content_is_prefix():
    """Content of length n is a prefix of content of length m > n for the same seed"""
    short = read_all(ContentSource(CHUNK_SIZE + 17, 7))
    long = read_all(ContentSource(3 * CHUNK_SIZE, 7))
    assert long.startswith(short)


def test_zero_length():
    source = ContentSource(0, 0)
    assert read_all(source) == b""
    assert source.digest() == (hashlib.sha256(b"").hexdigest(), 0)


def test_digest_matches_bytes():
    source = ContentSource(2 * CHUNK_SIZE + 5, 99)
    data = read_all(source)
    assert source.digest() == (hashlib.sha256(data).hexdigest(), len(data))


def test_seek_and_reread():
    """Seeking back regenerates the same bytes, so uploads can be retried"""
    source = ContentSource(3 * CHUNK_SIZE, 5)
    data = read_all(source)
    with source.open() as reader:
        reader.read(2 * CHUNK_SIZE + 3)
        reader.seek(CHUNK_SIZE - 10)
        assert reader.read(20) == data[CHUNK_SIZE - 10 : CHUNK_SIZE + 10]
        assert reader.seek(0, io.SEEK_END) == len(data)
        assert reader.read() == b""


def test_digest_stream_counts_bytes():
    digest, total = digest_stream(io.BytesIO(b"hello"), chunk_size=2)
    assert digest == hashlib.sha256(b"hello").hexdigest()
    assert total == 5


@pytest.mark.parametrize("length", [-1, 2**63, "10"])
def test_invalid_length(length):
    with pytest.raises(ConfigurationError):
        ContentSource(length, 0)


@pytest.mark.parametrize("seed", [MIN_SEED - 1, MAX_SEED + 1])
def test_invalid_seed(seed):
    with pytest.raises(ConfigurationError):
        ContentSource(16, seed)


def test_extreme_seeds_accepted():
    assert len(read_all(ContentSource(8, MIN_SEED))) == 8
    assert len(read_all(ContentSource(8, MAX_SEED))) == 8
