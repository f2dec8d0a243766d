#!/usr/bin/env python3
"""
Retry policy tests
"""

import pytest

from bucketprobe.errors import (
    BackendRejection,
    ConfigurationError,
    DefiniteFailure,
    TransientIOError,
)
from bucketprobe.retry import RetryPolicy


def flaky(failures, result="done", error=TransientIOError):
    calls = []

    def fn():
        calls.append(1)
        if len(calls) <= failures:
            raise error(f"failure {len(calls)}")
        return result

    return fn, calls


def test_succeeds_after_transient_failures(retry, sleeps):
    fn, calls = flaky(2)
    assert retry.call(fn) == "done"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_exhausted_budget_is_definite(retry, sleeps):
    fn, calls = flaky(10)
    with pytest.raises(DefiniteFailure) as exc_info:
        retry.call(fn, what="create 'k'")
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, TransientIOError)
    assert exc_info.value.__cause__ is exc_info.value.last_error
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_other_errors_not_retried(retry, sleeps):
    fn, calls = flaky(1, error=BackendRejection)
    with pytest.raises(BackendRejection):
        retry.call(fn)
    assert len(calls) == 1
    assert sleeps == []


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=1, max_delay=5, jitter=0)
    assert [policy.delay(n) for n in range(1, 6)] == [1, 2, 4, 5, 5]


def test_jitter_stays_in_bounds():
    policy = RetryPolicy(base_delay=1, max_delay=10, jitter=0.5)
    for _ in range(50):
        assert 0.5 <= policy.delay(1) <= 1.5


def test_single_attempt_disables_retries(sleeps):
    policy = RetryPolicy(max_attempts=1, sleep=sleeps.append)
    fn, calls = flaky(1)
    with pytest.raises(DefiniteFailure):
        policy.call(fn)
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"base_delay": -1}, {"max_delay": -1}, {"jitter": 2}],
)
def test_invalid_policy(kwargs):
    with pytest.raises(ConfigurationError):
        RetryPolicy(**kwargs)
