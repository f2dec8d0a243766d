"""
Suite executor.

Runs cases one after another against a single target. Size and count
probes change shared bucket state, so cases never run concurrently.

Before the first case a connection check runs one full
create/retrieve/verify/delete cycle; if it fails nothing else runs. A dry
run only lists the cases and never touches the target.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import click

from bucketprobe.cases import Case, CaseResult
from bucketprobe.crvd import Crvd, default_key
from bucketprobe.errors import ConfigurationError, ConnectionCheckError, PermanentIOError, ProbeError
from bucketprobe.retry import RetryPolicy
from bucketprobe.target import Target, TrackingTarget
from bucketprobe.units import format_elapsed

logger = logging.getLogger(__name__)

CONNECTION_CHECK_LENGTH = 1


@dataclass
class SuiteReport:
    """Aggregate outcome of one suite run"""

    results: List[CaseResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    elapsed: float = 0.0
    dry_run: bool = False
    interrupted: bool = False
    aborted: Optional[BaseException] = None

    @property
    def failed(self) -> List[CaseResult]:
        return [r for r in self.results if not r.success]

    @property
    def orphans(self) -> List[str]:
        return [key for r in self.results for key in r.orphans]


class Suite:
    """An ordered run of cases against one target"""

    def __init__(
        self,
        cases: Sequence[Case],
        target: Target,
        dry_run: bool = False,
        retry: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        echo: Callable[[str], None] = click.echo,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cases = sorted(cases, key=lambda c: c.label)
        self.target = TrackingTarget(target)
        self.dry_run = dry_run
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.echo = echo
        self.clock = clock
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop before the next case"""
        self._cancelled.set()

    def run(self) -> SuiteReport:
        if self.dry_run:
            return self.list_cases()
        self.check_connection()
        return self.execute()

    def list_cases(self) -> SuiteReport:
        self.echo(f"Dry run: {len(self.cases)} cases would run")
        for i, case in enumerate(self.cases, 1):
            self.echo(f"  {i:>4}. {case.label} [{case.strategy.value}]: {case.describe()}")
        return SuiteReport(skipped=[c.label for c in self.cases], dry_run=True)

    def check_connection(self) -> None:
        self.echo("Checking server connection…")
        crvd = Crvd(self.target, key=default_key(), content_length=CONNECTION_CHECK_LENGTH, retry=self.retry)
        try:
            crvd.create_retrieve_verify_delete()
        except ProbeError as e:
            message = f"connection check failed: {e}"
            left = self.target.outstanding()
            if left:
                message += f" (left behind: {', '.join(map(repr, left))})"
            raise ConnectionCheckError(message) from e
        finally:
            self.target.reset()

    def execute(self) -> SuiteReport:
        report = SuiteReport()
        total = len(self.cases)
        self.echo(f"Starting test suite ({total} cases)…\n")
        start = self.clock()
        deadline = start + self.timeout if self.timeout else None

        for i, case in enumerate(self.cases):
            if self._cancelled.is_set() or (deadline is not None and self.clock() >= deadline):
                report.skipped = [c.label for c in self.cases[i:]]
                self.echo(f"Stopping: {len(report.skipped)} cases not run")
                break

            case_start = self.clock()
            try:
                result = case.execute(self.target)
            except (PermanentIOError, ConfigurationError) as e:
                result = self._abandoned(case, e, case_start)
                report.aborted = e
            except KeyboardInterrupt as e:
                result = self._abandoned(case, e, case_start)
                result.summary = "interrupted"
                report.interrupted = True
            result.orphans = self.target.outstanding()
            self.target.reset()
            report.results.append(result)
            self._print_result(i + 1, total, result)

            if report.aborted is not None or report.interrupted:
                report.skipped = [c.label for c in self.cases[i + 1 :]]
                break

        report.elapsed = self.clock() - start
        self.echo(
            f"\n…test complete ({format_elapsed(report.elapsed)}): "
            f"{len(report.results) - len(report.failed)} passed, {len(report.failed)} failed, "
            f"{len(report.skipped)} not run"
        )
        return report

    def _abandoned(self, case: Case, error: BaseException, case_start: float) -> CaseResult:
        logger.debug("case %r abandoned", case.label, exc_info=error)
        return CaseResult(
            label=case.label,
            strategy=case.strategy,
            success=False,
            summary=f"aborted: {error}",
            elapsed=self.clock() - case_start,
            error=error,
        )

    def _print_result(self, index: int, total: int, result: CaseResult) -> None:
        status = "ok" if result.success else "FAIL"
        self.echo(
            f"[{status}] {index}/{total} {result.label} ({format_elapsed(result.elapsed)}): {result.summary}"
        )
        for failure in result.failures:
            self.echo(f"    {failure.pretty()}")
        if result.orphans:
            self.echo(f"    {len(result.orphans)} objects left behind:")
            for key in result.orphans:
                self.echo(f"      {key!r}")
