#!/usr/bin/env python3
"""
Create/retrieve/verify/delete tests

Runs full object lifecycles against the in-memory bucket, including the
failure paths: corrupted content, failed deletes and transient errors.
"""

import re

import pytest

from bucketprobe.content import ContentSource
from bucketprobe.crvd import Crvd, CrvdState, default_key
from bucketprobe.errors import (
    CleanupError,
    ConfigurationError,
    ContentMismatchError,
    DefiniteFailure,
    NotFoundError,
)
from tests.common.fake_target import FakeTarget


@pytest.mark.parametrize("seed", [0, 3])
@pytest.mark.parametrize("length", [0, 1, 4096, 3 * 1024 * 1024 + 7])
def test_round_trip(target, retry, length, seed):
    """Created content is retrieved intact and deleted"""
    job = Crvd(target, "round-trip.bin", content_length=length, seed=seed, retry=retry)
    job.create_retrieve_verify_delete()

    assert job.state is CrvdState.DELETED
    assert job.retrieved_length == length
    assert job.retrieved_digest == ContentSource(length, seed).digest()[0]
    assert "round-trip.bin" not in target.objects


def test_delete_is_final(target, retry):
    """After delete, retrieving the key reports not found"""
    job = Crvd(target, "gone.bin", retry=retry)
    job.create_retrieve_verify_delete()

    with pytest.raises(NotFoundError):
        target.get("gone.bin")
    assert not target.head("gone.bin")


def test_keep_leaves_object(target, retry):
    job = Crvd(target, "kept.bin", content_length=100, retry=retry)
    job.create_retrieve_verify()

    assert job.state is CrvdState.KEPT
    assert target.objects["kept.bin"] == ContentSource(100).open().read()
    assert "kept" in job.pretty()


def test_mismatch_detected(retry):
    target = FakeTarget(corrupt=True)
    job = Crvd(target, "corrupt.bin", content_length=64, retry=retry)

    with pytest.raises(ContentMismatchError) as exc_info:
        job.create_retrieve_verify_delete()

    assert job.state is CrvdState.FAILED
    assert exc_info.value.expected_length == exc_info.value.actual_length == 64
    assert exc_info.value.expected_digest != exc_info.value.actual_digest
    # The object is left for inspection, not deleted
    assert "corrupt.bin" in target.objects


def test_delete_failure_is_cleanup_error(retry):
    target = FakeTarget(fail_delete=True)
    job = Crvd(target, "stuck.bin", retry=retry)

    with pytest.raises(CleanupError) as exc_info:
        job.create_retrieve_verify_delete()

    assert exc_info.value.key == "stuck.bin"
    assert exc_info.value.verified
    assert job.state is CrvdState.FAILED


def test_transient_failures_retried(retry, sleeps):
    target = FakeTarget(transient_failures=2)
    Crvd(target, "flaky.bin", retry=retry).create_retrieve_verify_delete()

    assert target.calls["put"] == 3
    assert len(sleeps) == 2


def test_transient_failures_exhausted(retry):
    target = FakeTarget(transient_failures=10)
    job = Crvd(target, "down.bin", retry=retry)

    with pytest.raises(DefiniteFailure):
        job.create()
    assert job.state is CrvdState.FAILED


def test_invalid_parameters_before_io(target):
    with pytest.raises(ConfigurationError):
        Crvd(target, "x", content_length=-1)
    with pytest.raises(ConfigurationError):
        Crvd(target, "x", seed=2**63)
    assert target.total_calls == 0


def test_steps_in_order(target, retry):
    job = Crvd(target, "order.bin", retry=retry)
    with pytest.raises(RuntimeError):
        job.retrieve()
    job.create()
    with pytest.raises(RuntimeError):
        job.delete()


def test_default_key():
    assert re.fullmatch(r"bucketprobe-crvd-\d{8}T\d{12}Z\.bin", default_key())
    job = Crvd(FakeTarget())
    assert job.key.startswith("bucketprobe-crvd-")
