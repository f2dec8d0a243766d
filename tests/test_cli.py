#!/usr/bin/env python3
"""
Command line tests

open_target is replaced with one returning the in-memory bucket, so
commands run end to end without a server.
"""

import logging

import pytest
from click.testing import CliRunner

from bucketprobe import cli
from tests.common.fake_target import FakeTarget


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("S3_ENDPOINT", "S3_ACCESS_KEY", "S3_SECRET_KEY", "S3_REGION", "S3_VERIFY_SSL",
                "BUCKETPROBE_RETRIES", "BUCKETPROBE_WORKERS", "BUCKETPROBE_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    yield
    # Commands point the root handler at the runner's stream; drop it
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


@pytest.fixture
def bucket(monkeypatch):
    """In-memory bucket returned for any bucket URL"""
    fake = FakeTarget()
    opened = []

    def fake_open_target(url, config):
        opened.append((url, config))
        return fake

    monkeypatch.setattr(cli, "open_target", fake_open_target)
    fake.opened = opened
    return fake


def invoke(*args):
    return CliRunner().invoke(cli.main, list(args))


def test_version():
    result = invoke("--version")
    assert result.exit_code == 0
    assert "bucketprobe" in result.output


def test_crvd(bucket):
    result = invoke("crvd", "s3://bucket/", "--size", "1K", "--key", "hello.bin")
    assert result.exit_code == 0, result.output
    assert "1K object created, retrieved, verified, and deleted (hello.bin" in result.output
    assert bucket.objects == {}


def test_crvd_keep(bucket):
    result = invoke("crvd", "s3://bucket/", "-k", "kept.bin", "--keep", "--random-seed=-5")
    assert result.exit_code == 0, result.output
    assert "keeping kept.bin" in result.output
    assert "kept.bin" in bucket.objects


def test_crvd_flags_reach_config(bucket):
    result = invoke("crvd", "s3://bucket/", "-e", "http://minio:9000", "--retries", "2", "--workers", "3")
    assert result.exit_code == 0, result.output
    _, config = bucket.opened[0]
    assert config.endpoint == "http://minio:9000"
    assert config.retry_max_attempts == 2
    assert config.workers == 3


def test_crvd_invalid_size(bucket):
    result = invoke("crvd", "s3://bucket/", "--size", "lots")
    assert result.exit_code == 1
    assert "invalid size" in result.output
    assert bucket.total_calls == 0


def test_crvd_swift_unsupported():
    result = invoke("crvd", "swift://container/")
    assert result.exit_code == 1
    assert "Swift" in result.output


def test_suite_dry_run(bucket):
    result = invoke("suite", "s3://bucket/", "--size", "--count", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "2 cases would run" in result.output
    assert "Object count: up to 1024" in result.output
    assert "Object size: up to 5G" in result.output
    assert bucket.total_calls == 0


def test_suite_dry_run_unicode_invalid(bucket):
    result = invoke("suite", "s3://bucket/", "--unicode-invalid", "-n")
    assert result.exit_code == 0, result.output
    assert "Unicode invalid characters: High_Surrogates" in result.output
    assert "UTF-8 invalid sequences: Overlong_Sequences" in result.output
    assert "Object size" not in result.output
    assert bucket.total_calls == 0


def test_suite_unbounded_count_dry_run(bucket):
    result = invoke("suite", "s3://bucket/", "--count", "--count-max", "-1", "-n")
    assert result.exit_code == 0, result.output
    assert "Object count: unbounded" in result.output


def test_suite_invalid_count_max(bucket):
    result = invoke("suite", "s3://bucket/", "--count", "--count-max", "-2")
    assert result.exit_code == 1
    assert bucket.total_calls == 0


def test_suite_finds_size_limit(bucket):
    bucket.max_size = 1000
    result = invoke("suite", "s3://bucket/", "--size", "--size-max", "4K")
    assert result.exit_code == 0, result.output
    assert "[FAIL] 1/1 Object size: up to 4K" in result.output
    assert "maximum 1000B" in result.output
    assert "0 passed, 1 failed, 0 not run" in result.output
    assert bucket.objects == {}


def test_suite_connection_check_failure(bucket):
    bucket.permanent_error = "403 AccessDenied"
    result = invoke("suite", "s3://bucket/", "--size", "--size-max", "4K")
    assert result.exit_code == 1
    assert "connection check failed" in result.output
    assert "Starting test suite" not in result.output


def test_verbose_logs_configuration(bucket, monkeypatch):
    monkeypatch.setenv("S3_SECRET_KEY", "hunter2")
    result = invoke("crvd", "s3://bucket/", "-vv", "-e", "http://minio:9000")
    assert result.exit_code == 0, result.output
    assert "configuration:" in result.output
    assert "http://minio:9000" in result.output
    assert "hunter2" not in result.output
