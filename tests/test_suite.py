#!/usr/bin/env python3
"""
Suite executor tests

Uses stub cases so the executor's own behaviour (ordering, connection
check, dry run, cancellation, aborts and orphan reporting) can be checked
without real probing.
"""

import io

import pytest

from bucketprobe.cases import Case, CaseResult, Strategy
from bucketprobe.errors import ConnectionCheckError, PermanentIOError
from bucketprobe.suite import Suite
from tests.common.fake_target import FakeTarget


class StubCase(Case):
    """Case that records its runs and optionally misbehaves"""

    strategy = Strategy.EXHAUSTIVE

    def __init__(self, label, success=True, raises=None, creates=(), on_run=None):
        super().__init__(label)
        self.success = success
        self.raises = raises
        self.creates = creates
        self.on_run = on_run
        self.runs = 0

    def describe(self):
        return "stub"

    def _run(self, target):
        self.runs += 1
        if self.on_run:
            self.on_run()
        for key in self.creates:
            target.put(key, io.BytesIO(b""), 0)
        if self.raises is not None:
            raise self.raises
        return CaseResult(self.label, self.strategy, self.success, summary="stub result")


@pytest.fixture
def lines():
    return []


def make_suite(cases, target, lines, **kwargs):
    return Suite(cases, target, echo=lines.append, **kwargs)


def test_cases_run_in_label_order(target, retry, lines):
    order = []
    cases = [StubCase(label, on_run=lambda l=label: order.append(l)) for label in ("b", "c", "a")]
    report = make_suite(cases, target, lines, retry=retry).run()

    assert order == ["a", "b", "c"]
    assert [r.label for r in report.results] == ["a", "b", "c"]
    assert report.failed == []
    assert lines[-1].endswith("3 passed, 0 failed, 0 not run")


def test_connection_check_failure_runs_nothing(retry, lines):
    target = FakeTarget(permanent_error="403 AccessDenied")
    case = StubCase("a")

    with pytest.raises(ConnectionCheckError):
        make_suite([case], target, lines, retry=retry).run()
    assert case.runs == 0


def test_connection_check_reports_left_behind_object(retry, lines):
    target = FakeTarget(corrupt=True)
    with pytest.raises(ConnectionCheckError) as exc_info:
        make_suite([StubCase("a")], target, lines, retry=retry).run()
    assert "left behind" in str(exc_info.value)


def test_connection_check_cleans_up(target, retry, lines):
    make_suite([], target, lines, retry=retry).run()
    assert target.calls["put"] == 1
    assert target.calls["delete"] == 1
    assert target.objects == {}


def test_dry_run_touches_nothing(target, lines):
    cases = [StubCase("b"), StubCase("a")]
    report = make_suite(cases, target, lines, dry_run=True).run()

    assert target.total_calls == 0
    assert all(c.runs == 0 for c in cases)
    assert report.dry_run
    assert report.skipped == ["a", "b"]
    assert "2 cases" in lines[0]
    assert "a [exhaustive]: stub" in lines[1]


def test_failures_are_counted(target, retry, lines):
    cases = [StubCase("a"), StubCase("b", success=False)]
    report = make_suite(cases, target, lines, retry=retry).run()

    assert [r.label for r in report.failed] == ["b"]
    assert any(line.startswith("[FAIL] 2/2 b") for line in lines)
    assert lines[-1].endswith("1 passed, 1 failed, 0 not run")


def test_cancel_stops_before_next_case(target, retry, lines):
    suite = make_suite([], target, lines, retry=retry)
    cases = [StubCase("a", on_run=suite.cancel), StubCase("b"), StubCase("c")]
    suite.cases = cases

    report = suite.run()

    assert [r.label for r in report.results] == ["a"]
    assert report.skipped == ["b", "c"]
    assert cases[1].runs == cases[2].runs == 0


def test_timeout_stops_between_cases(target, retry, lines):
    now = [0.0]

    def advance():
        now[0] += 10

    cases = [StubCase(label, on_run=advance) for label in ("a", "b", "c")]
    suite = make_suite(cases, target, lines, retry=retry, timeout=15, clock=lambda: now[0])
    report = suite.execute()

    assert [r.label for r in report.results] == ["a", "b"]
    assert report.skipped == ["c"]


def test_permanent_error_aborts_suite(target, retry, lines):
    error = PermanentIOError("403 AccessDenied")
    cases = [StubCase("a"), StubCase("b", raises=error, creates=["orphan.bin"]), StubCase("c")]
    report = make_suite(cases, target, lines, retry=retry).run()

    assert report.aborted is error
    assert report.skipped == ["c"]
    assert not report.results[1].success
    assert report.results[1].orphans == ["orphan.bin"]
    assert report.orphans == ["orphan.bin"]
    assert cases[2].runs == 0


def test_interrupt_abandons_case(target, retry, lines):
    cases = [StubCase("a", raises=KeyboardInterrupt(), creates=["x.bin", "y.bin"]), StubCase("b")]
    report = make_suite(cases, target, lines, retry=retry).run()

    assert report.interrupted
    assert report.results[0].summary == "interrupted"
    assert report.results[0].orphans == ["x.bin", "y.bin"]
    assert report.skipped == ["b"]
    assert any("2 objects left behind" in line for line in lines)
