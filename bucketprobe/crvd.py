"""
Create, retrieve, verify, delete.

A Crvd drives one object through its lifecycle:

    NEW -> CREATED -> RETRIEVED -> VERIFIED -> KEPT | DELETED

with FAILED reachable from any step. The created body is never kept;
verification compares SHA-256 digests of the generated and the retrieved
streams.

Known limitation: a failure in retrieve, verify or delete can leave the
object in the bucket. It is reported, not cleaned up, since deleting on
error could hide the failure being probed.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from bucketprobe.content import DEFAULT_CONTENT_LENGTH, DEFAULT_SEED, ContentSource, digest_stream
from bucketprobe.errors import CleanupError, ContentMismatchError, ProbeError
from bucketprobe.retry import RetryPolicy
from bucketprobe.target import Target

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CrvdState(enum.Enum):
    NEW = "new"
    CREATED = "created"
    RETRIEVED = "retrieved"
    VERIFIED = "verified"
    KEPT = "kept"
    DELETED = "deleted"
    FAILED = "failed"


def default_key() -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"bucketprobe-crvd-{timestamp}.bin"


class Crvd:
    """One object's create/retrieve/verify/delete run"""

    def __init__(
        self,
        target: Target,
        key: Optional[str] = None,
        content_length: int = DEFAULT_CONTENT_LENGTH,
        seed: int = DEFAULT_SEED,
        retry: Optional[RetryPolicy] = None,
    ):
        # Validates length and seed before any I/O
        self.content = ContentSource(content_length, seed)
        self.target = target
        self._key = key or default_key()
        self.retry = retry or RetryPolicy()
        self.state = CrvdState.NEW
        self.expected_digest: Optional[str] = None
        self.retrieved_digest: Optional[str] = None
        self.retrieved_length: Optional[int] = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def content_length(self) -> int:
        return self.content.length

    def _step(self, what: str, fn: Callable[[], T]) -> T:
        try:
            return self.retry.call(fn, what=f"{what} {self._key!r}")
        except ProbeError:
            self.state = CrvdState.FAILED
            raise

    def _require(self, *states: CrvdState) -> None:
        if self.state not in states:
            expected = " or ".join(s.value for s in states)
            raise RuntimeError(f"{self._key!r}: expected state {expected}, was {self.state.value}")

    def create(self) -> None:
        self._require(CrvdState.NEW)
        self.expected_digest, _ = self.content.digest()

        def upload():
            with self.content.open() as reader:
                self.target.put(self._key, reader, self.content.length)

        self._step("create", upload)
        self.state = CrvdState.CREATED
        logger.debug("created %r (%d bytes)", self._key, self.content.length)

    def retrieve(self) -> None:
        self._require(CrvdState.CREATED)

        def download():
            with self.target.get(self._key) as body:
                return digest_stream(body)

        self.retrieved_digest, self.retrieved_length = self._step("retrieve", download)
        self.state = CrvdState.RETRIEVED
        logger.debug("retrieved %r (%d bytes)", self._key, self.retrieved_length)

    def verify(self) -> None:
        self._require(CrvdState.RETRIEVED)
        if (
            self.retrieved_digest != self.expected_digest
            or self.retrieved_length != self.content.length
        ):
            self.state = CrvdState.FAILED
            raise ContentMismatchError(
                self._key,
                self.expected_digest,
                self.retrieved_digest,
                self.content.length,
                self.retrieved_length,
            )
        self.state = CrvdState.VERIFIED

    def delete(self) -> None:
        self._require(CrvdState.VERIFIED)
        try:
            self.retry.call(lambda: self.target.delete(self._key), what=f"delete {self._key!r}")
        except ProbeError as e:
            self.state = CrvdState.FAILED
            raise CleanupError(self._key, e) from e
        self.state = CrvdState.DELETED

    def create_retrieve_verify(self) -> None:
        """Create, retrieve and verify; leave the object in the bucket"""
        self.create()
        self.retrieve()
        self.verify()
        self.state = CrvdState.KEPT

    def create_retrieve_verify_delete(self) -> None:
        self.create()
        self.retrieve()
        self.verify()
        self.delete()

    def pretty(self) -> str:
        return f"{self._key} ({self.content.length} bytes, seed {self.content.seed}, {self.state.value})"

    def __repr__(self) -> str:
        return f"Crvd(key={self._key!r}, length={self.content.length}, seed={self.content.seed})"
