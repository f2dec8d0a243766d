"""
Pytest configuration and fixtures for bucketprobe tests
"""

import pytest

from bucketprobe.config import ProbeConfig
from bucketprobe.retry import RetryPolicy
from tests.common.fake_target import FakeTarget


@pytest.fixture
def config():
    """
    Test configuration fixture

    Defaults only; nothing is read from the environment
    """
    return ProbeConfig(endpoint="http://localhost:9000", region="us-east-1")


@pytest.fixture
def sleeps():
    """Delays requested by the retry policy, instead of sleeping"""
    return []


@pytest.fixture
def retry(sleeps):
    """Retry policy that records delays rather than sleeping"""
    return RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0, sleep=sleeps.append)


@pytest.fixture
def target():
    """Well-behaved in-memory bucket"""
    return FakeTarget()
