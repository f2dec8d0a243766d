"""
Test cases and the boundary search.

A case is one probe definition with a domain fixed at construction:

- ExhaustiveCase: every key in a KeyList, each through a full CRVD cycle
- BisectSequenceCase: binary search for the last accepted index of a KeyList
- BisectMagnitudeCase: binary search for the largest accepted size or count

All three share the execute(target) -> CaseResult contract. Cases hold no
state between runs.

Boundary search precondition: the success predicate must be monotonic.
Once a probe at value v fails, every value above v is assumed to fail.
A backend that fails at some N but succeeds at a larger N will produce a
wrong boundary.
"""

from __future__ import annotations

import abc
import enum
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from bucketprobe import unicode_tables
from bucketprobe.content import ContentSource
from bucketprobe.crvd import Crvd
from bucketprobe.errors import (
    CleanupError,
    ConfigurationError,
    CountFailure,
    PermanentIOError,
    ProbeError,
)
from bucketprobe.keys import KeyList, KeyResult, RangeKeyList, SequenceKeyList
from bucketprobe.retry import RetryPolicy
from bucketprobe.target import Target
from bucketprobe.units import format_bytes

logger = logging.getLogger(__name__)

SIZE_MAX_DEFAULT = 5 * (1 << 30)
COUNT_MAX_DEFAULT = 1024
UNBOUNDED_COUNT = 2**64 - 1
DEFAULT_WORKERS = 8

KEY_TEMPLATE = "bucketprobe-key-{}.bin"
KEY_CONTENT_LENGTH = 16
COUNT_CONTENT_LENGTH = 16


class Strategy(enum.Enum):
    EXHAUSTIVE = "exhaustive"
    BISECT_SEQUENCE = "bisect-sequence"
    BISECT_MAGNITUDE = "bisect-magnitude"


# --------------------------------------------------------------------------------------
# Results
# --------------------------------------------------------------------------------------


@dataclass
class ProbeRecord:
    """One probed value and its outcome"""

    value: int
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class CaseResult:
    """Outcome of executing one case"""

    label: str
    strategy: Strategy
    success: bool
    summary: str = ""
    boundary: Optional[int] = None
    failures: List[KeyResult] = field(default_factory=list)
    probes: List[ProbeRecord] = field(default_factory=list)
    elapsed: float = 0.0
    error: Optional[BaseException] = None
    orphans: List[str] = field(default_factory=list)


# --------------------------------------------------------------------------------------
# Boundary search
# --------------------------------------------------------------------------------------


def bisect(low: int, high: int, succeeds: Callable[[int], bool]) -> Tuple[int, List[int]]:
    """
    Largest value in [low, high] for which succeeds() holds.

    low is assumed good without probing. Needs at most
    ceil(log2(high - low + 1)) probes. Returns the boundary and the probed
    values in order.
    """
    if low > high:
        raise ValueError(f"empty domain [{low}, {high}]")
    known_good = low
    known_bad = high + 1  # not yet known to fail
    probed = []
    while known_bad - known_good > 1:
        mid = known_good + (known_bad - known_good) // 2
        probed.append(mid)
        if succeeds(mid):
            known_good = mid
        else:
            known_bad = mid
    return known_good, probed


def gallop(low: int, high: int, succeeds: Callable[[int], bool]) -> Tuple[int, List[int]]:
    """
    Like bisect(), but first doubles upward from low until a failure.

    For very large or unbounded domains where the boundary is expected to
    sit far below the ceiling.
    """
    if low > high:
        raise ValueError(f"empty domain [{low}, {high}]")
    known_good = low
    probed = []
    while known_good < high:
        value = min(high, max(known_good + 1, known_good * 2))
        probed.append(value)
        if not succeeds(value):
            boundary, rest = bisect(known_good, value - 1, succeeds)
            return boundary, probed + rest
        known_good = value
    return known_good, probed


# --------------------------------------------------------------------------------------
# Probes
# --------------------------------------------------------------------------------------


def attempt(fn: Callable[[], None]) -> Optional[ProbeError]:
    """
    Run one probe; return its definitive failure, or None on success.

    PermanentIOError and ConfigurationError propagate: they abort the case.
    """
    try:
        fn()
    except (PermanentIOError, ConfigurationError):
        raise
    except CleanupError as e:
        # The backend accepted the object; the leftover is reported as an orphan
        logger.warning("%s", e)
    except ProbeError as e:
        return e
    return None


class KeyProbe:
    """CRVD cycle on one candidate key"""

    def __init__(self, retry: Optional[RetryPolicy] = None, content_length: int = KEY_CONTENT_LENGTH):
        self.retry = retry or RetryPolicy()
        self.content_length = content_length

    def __call__(self, target: Target, key: str) -> None:
        Crvd(target, key=key, content_length=self.content_length, retry=self.retry).create_retrieve_verify_delete()


class SizeProbe:
    """CRVD cycle on one object of the probed size"""

    def __init__(self, retry: Optional[RetryPolicy] = None, seed: int = 0, key_prefix: str = "bucketprobe-size/"):
        self.retry = retry or RetryPolicy()
        self.seed = seed
        self.key_prefix = key_prefix

    def __call__(self, target: Target, value: int) -> None:
        key = f"{self.key_prefix}{value}.bin"
        Crvd(target, key=key, content_length=value, seed=self.seed, retry=self.retry).create_retrieve_verify_delete()


class CountProbe:
    """
    Create `value` objects under a fresh prefix and check they all exist.

    A probed count fails if any write fails, any object is missing on HEAD,
    or the prefix listing reports fewer objects than were written. Every
    created object is deleted before the probe returns, on every exit path.
    """

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        workers: int = DEFAULT_WORKERS,
        content_length: int = COUNT_CONTENT_LENGTH,
        key_prefix: str = "bucketprobe-count/",
    ):
        if workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {workers}")
        self.retry = retry or RetryPolicy()
        self.workers = workers
        self.content = ContentSource(content_length)
        self.key_prefix = key_prefix

    def __call__(self, target: Target, value: int) -> None:
        prefix = f"{self.key_prefix}{value}-{uuid.uuid4().hex[:8]}/"
        keys = (f"{prefix}{i:010d}.bin" for i in range(value))
        # Appended by the workers as puts succeed, including partial fan-outs
        created: List[str] = []
        try:
            _, write_errors = self._fan_out(keys, lambda key: self._put(target, key, created))
            _raise_permanent(write_errors)
            written = list(created)
            results, head_errors = self._fan_out(written, lambda key: self._head(target, key))
            _raise_permanent(head_errors)
            missing = len(written) - len(results)
            listed = self.retry.call(
                lambda: sum(1 for _ in target.list_keys(prefix)), what=f"list {prefix!r}"
            )
            if write_errors or missing or listed < value:
                for key, error in (write_errors + head_errors)[:3]:
                    logger.info("count %d: %r: %s", value, key, error)
                raise CountFailure(value, len(write_errors), missing, listed)
        finally:
            self._cleanup(target, list(created))

    def _put(self, target: Target, key: str, created: List[str]) -> str:
        def put():
            with self.content.open() as reader:
                target.put(key, reader, self.content.length)

        self.retry.call(put, what=f"create {key!r}")
        created.append(key)
        return key

    def _head(self, target: Target, key: str) -> Optional[str]:
        if self.retry.call(lambda: target.head(key), what=f"head {key!r}"):
            return key
        return None

    def _fan_out(self, keys: Iterable[str], fn) -> Tuple[List[str], List[Tuple[str, ProbeError]]]:
        """Run fn over keys in a bounded pool; return truthy results and errors"""
        done: List[str] = []
        errors: List[Tuple[str, ProbeError]] = []
        batch_size = self.workers * 64
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            batch: List[str] = []
            for key in keys:
                batch.append(key)
                if len(batch) >= batch_size:
                    self._drain(executor, batch, fn, done, errors)
                    batch = []
            if batch:
                self._drain(executor, batch, fn, done, errors)
        return done, errors

    @staticmethod
    def _drain(executor, batch, fn, done, errors) -> None:
        futures = {executor.submit(fn, key): key for key in batch}
        for future in as_completed(futures):
            try:
                result = future.result()
            except ProbeError as e:
                errors.append((futures[future], e))
                continue
            if result:
                done.append(result)

    def _cleanup(self, target: Target, keys: Sequence[str]) -> None:
        if not keys:
            return
        deleted, errors = self._fan_out(keys, lambda key: self._delete(target, key))
        for key, error in errors:
            logger.warning("cleanup: could not delete %r: %s", key, error)
        logger.debug("cleanup: deleted %d of %d objects", len(deleted), len(keys))

    def _delete(self, target: Target, key: str) -> str:
        self.retry.call(lambda: target.delete(key), what=f"delete {key!r}")
        return key


def _raise_permanent(errors: Sequence[Tuple[str, ProbeError]]) -> None:
    for _, error in errors:
        if isinstance(error, (PermanentIOError, ConfigurationError)):
            raise error


# --------------------------------------------------------------------------------------
# Cases
# --------------------------------------------------------------------------------------


class Case(abc.ABC):
    """One probe definition; re-runnable"""

    strategy: Strategy

    def __init__(self, label: str):
        self.label = label

    @abc.abstractmethod
    def describe(self) -> str:
        """The domain, for dry runs"""

    @abc.abstractmethod
    def _run(self, target: Target) -> CaseResult:
        ...

    def execute(self, target: Target) -> CaseResult:
        start = time.monotonic()
        result = self._run(target)
        result.elapsed = time.monotonic() - start
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label!r}>"


class ExhaustiveCase(Case):
    """
    Probe every key in a list.

    expect_failure sets the polarity: when True, a rejected key is the
    correct outcome and an accepted key is an anomaly.
    """

    strategy = Strategy.EXHAUSTIVE

    def __init__(
        self,
        label: str,
        key_list: KeyList,
        probe: Optional[KeyProbe] = None,
        expect_failure: bool = False,
    ):
        super().__init__(label)
        self.key_list = key_list
        self.probe = probe or KeyProbe()
        self.expect_failure = expect_failure

    def describe(self) -> str:
        expected = "rejection" if self.expect_failure else "acceptance"
        return f"{self.key_list.count} keys, each probed, expecting {expected}"

    def _run(self, target: Target) -> CaseResult:
        failures = []
        for index, key in enumerate(self.key_list):
            error = attempt(lambda: self.probe(target, key))
            result = KeyResult(self.key_list, index, key, error)
            if not result.as_expected(self.expect_failure):
                failures.append(result)
        count = self.key_list.count
        outcome = "rejected" if self.expect_failure else "accepted"
        if failures:
            summary = f"{len(failures)} of {count} keys not {outcome} as expected"
        else:
            summary = f"all {count} keys {outcome} as expected"
        return CaseResult(
            label=self.label,
            strategy=self.strategy,
            success=not failures,
            summary=summary,
            failures=failures,
        )


class BisectSequenceCase(Case):
    """
    Find the last index of an ordered key list whose key is accepted.

    Index 0 is probed first, since the search floor is otherwise assumed
    good. Succeeds when every key up to the last index is accepted.
    """

    strategy = Strategy.BISECT_SEQUENCE

    def __init__(self, label: str, key_list: KeyList, probe: Optional[KeyProbe] = None):
        super().__init__(label)
        self.key_list = key_list
        self.probe = probe or KeyProbe()

    def describe(self) -> str:
        return f"{self.key_list.count} keys, binary search"

    def _run(self, target: Target) -> CaseResult:
        count = self.key_list.count
        probes: List[ProbeRecord] = []
        rejected: List[KeyResult] = []

        def succeeds(index: int) -> bool:
            key = self.key_list.key(index)
            error = attempt(lambda: self.probe(target, key))
            probes.append(ProbeRecord(index, error))
            if error is not None:
                rejected.append(KeyResult(self.key_list, index, key, error))
            return error is None

        result = CaseResult(label=self.label, strategy=self.strategy, success=True, probes=probes)
        if count == 0:
            result.summary = "no keys"
            return result
        if not succeeds(0):
            result.success = False
            result.failures = rejected
            result.summary = f"first of {count} keys rejected"
            return result

        boundary, _ = bisect(0, count - 1, succeeds)
        result.boundary = boundary
        if boundary == count - 1:
            result.summary = f"all {count} keys accepted ({len(probes)} probes)"
        else:
            first_bad = min(rejected, key=lambda r: r.index)
            result.success = False
            result.failures = [first_bad]
            result.summary = (
                f"keys accepted through {boundary + 1} of {count}; "
                f"{first_bad.key!r} rejected ({len(probes)} probes)"
            )
        return result


class BisectMagnitudeCase(Case):
    """
    Find the largest accepted value in [low, high].

    low is taken as known good. Succeeds when high itself is accepted;
    otherwise the boundary is the discovered limit.
    """

    strategy = Strategy.BISECT_MAGNITUDE

    def __init__(
        self,
        label: str,
        low: int,
        high: int,
        probe: Callable[[Target, int], None],
        unit: Callable[[int], str] = str,
        use_gallop: bool = False,
    ):
        super().__init__(label)
        if low > high:
            raise ConfigurationError(f"{label}: empty range {low}..{high}")
        self.low = low
        self.high = high
        self.probe = probe
        self.unit = unit
        self.use_gallop = use_gallop

    def describe(self) -> str:
        search = "doubling then binary search" if self.use_gallop else "binary search"
        return f"{self.unit(self.low)}..{self.unit(self.high)}, {search}"

    def _run(self, target: Target) -> CaseResult:
        probes: List[ProbeRecord] = []

        def succeeds(value: int) -> bool:
            logger.info("%s: probing %s", self.label, self.unit(value))
            error = attempt(lambda: self.probe(target, value))
            probes.append(ProbeRecord(value, error))
            return error is None

        search = gallop if self.use_gallop else bisect
        boundary, _ = search(self.low, self.high, succeeds)
        result = CaseResult(
            label=self.label,
            strategy=self.strategy,
            success=boundary == self.high,
            boundary=boundary,
            probes=probes,
        )
        if result.success:
            result.summary = f"no limit up to {self.unit(self.high)} ({len(probes)} probes)"
        else:
            first_bad = min((p for p in probes if not p.success), key=lambda p: p.value)
            result.error = first_bad.error
            result.summary = (
                f"maximum {self.unit(boundary)}; {self.unit(first_bad.value)} failed: "
                f"{first_bad.error} ({len(probes)} probes)"
            )
        return result


# --------------------------------------------------------------------------------------
# Factories
# --------------------------------------------------------------------------------------


def size_cases(size_max: int = SIZE_MAX_DEFAULT, retry: Optional[RetryPolicy] = None, seed: int = 0) -> List[Case]:
    ContentSource(size_max, seed)  # validates size_max and seed before any I/O
    return [
        BisectMagnitudeCase(
            f"Object size: up to {format_bytes(size_max)}",
            0,
            size_max,
            SizeProbe(retry, seed=seed),
            unit=format_bytes,
        )
    ]


def count_cases(
    count_max: int = COUNT_MAX_DEFAULT,
    retry: Optional[RetryPolicy] = None,
    workers: int = DEFAULT_WORKERS,
) -> List[Case]:
    if count_max < 0 or count_max > UNBOUNDED_COUNT:
        raise ConfigurationError(f"count max must be between 0 and {UNBOUNDED_COUNT}, got {count_max}")
    unbounded = count_max == UNBOUNDED_COUNT
    limit = "unbounded" if unbounded else f"up to {count_max}"
    return [
        BisectMagnitudeCase(
            f"Object count: {limit}",
            0,
            count_max,
            CountProbe(retry, workers=workers),
            use_gallop=unbounded,
        )
    ]


def range_table_cases(prefix: str, tables: Mapping, probe: KeyProbe) -> List[Case]:
    cases: List[Case] = []
    for name in sorted(tables):
        if name in unicode_tables.UNSAFE_TABLES:
            continue
        ranges = unicode_tables.without_surrogates(tables[name])
        if not ranges:
            continue
        key_list = RangeKeyList(name, ranges, KEY_TEMPLATE)
        cases.append(BisectSequenceCase(f"{prefix}{name}", key_list, probe))
    return cases


def sequence_cases(prefix: str, tables: Mapping, probe: KeyProbe) -> List[Case]:
    return [
        BisectSequenceCase(f"{prefix}{name}", SequenceKeyList(name, tables[name], KEY_TEMPLATE), probe)
        for name in sorted(tables)
        if tables[name]
    ]


def linear_cases(prefix: str, key_lists: Iterable[KeyList], probe: KeyProbe, expect_failure: bool) -> List[Case]:
    return [
        ExhaustiveCase(f"{prefix}{key_list.name}", key_list, probe, expect_failure=expect_failure)
        for key_list in sorted(key_lists, key=lambda k: k.name)
        if key_list.count
    ]


def unicode_category_cases(tables: Mapping, probe: KeyProbe) -> List[Case]:
    return range_table_cases("Unicode categories: ", tables, probe)


def unicode_script_cases(tables: Mapping, probe: KeyProbe) -> List[Case]:
    return range_table_cases("Unicode scripts: ", tables, probe)


def unicode_property_cases(tables: Mapping, probe: KeyProbe) -> List[Case]:
    return range_table_cases("Unicode properties: ", tables, probe)


def unicode_emoji_cases(property_tables: Mapping, sequence_tables: Mapping, probe: KeyProbe) -> List[Case]:
    cases = range_table_cases("Unicode emoji properties: ", property_tables, probe)
    cases.extend(sequence_cases("Unicode emoji sequences: ", sequence_tables, probe))
    return cases


def unicode_invalid_cases(character_tables: Mapping, utf8_tables: Mapping, probe: KeyProbe) -> List[Case]:
    """Keys expected to be rejected, each probed individually"""
    characters = [RangeKeyList(name, ranges, KEY_TEMPLATE) for name, ranges in character_tables.items()]
    sequences = [SequenceKeyList(name, keys, KEY_TEMPLATE) for name, keys in utf8_tables.items()]
    cases = linear_cases("Unicode invalid characters: ", characters, probe, expect_failure=True)
    cases.extend(linear_cases("UTF-8 invalid sequences: ", sequences, probe, expect_failure=True))
    return cases


UNICODE_FAMILIES = ("categories", "scripts", "properties", "emoji", "invalid")


def unicode_cases(families: Iterable[str], probe: KeyProbe) -> List[Case]:
    """Build tables for the selected Unicode families, then their cases"""
    families = set(families)
    unknown = families - set(UNICODE_FAMILIES)
    if unknown:
        raise ConfigurationError(f"unknown Unicode families: {', '.join(sorted(unknown))}")
    cases: List[Case] = []
    if "categories" in families:
        cases.extend(unicode_category_cases(unicode_tables.category_tables(), probe))
    if "properties" in families:
        cases.extend(unicode_property_cases(unicode_tables.property_tables(), probe))
    if "scripts" in families:
        cases.extend(unicode_script_cases(unicode_tables.script_tables(), probe))
    if "emoji" in families:
        cases.extend(
            unicode_emoji_cases(
                unicode_tables.emoji_property_tables(),
                unicode_tables.emoji_sequence_tables(),
                probe,
            )
        )
    if "invalid" in families:
        cases.extend(
            unicode_invalid_cases(
                unicode_tables.invalid_character_tables(),
                unicode_tables.invalid_utf8_tables(),
                probe,
            )
        )
    return cases
