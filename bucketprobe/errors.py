"""
Error taxonomy for bucket probing.

Every failure a probe can observe is one of these types, so callers decide
what to do by class rather than by inspecting messages:

- ConfigurationError: bad size/seed/flag combination, raised before any I/O
- TransientIOError: timeout, throttling, 5xx; retried with backoff
- DefiniteFailure: a transient error that exhausted its retry budget
- PermanentIOError: credentials/permissions/missing bucket; aborts the suite
- BackendRejection: the backend (or client-side encoding) refused the request
- NotFoundError: the object is not there
- ContentMismatchError: retrieved bytes differ from what was created
- CountFailure: a count probe's objects were not all written, visible and listed
- CleanupError: delete failed after the object was verified
"""

from __future__ import annotations

from typing import Optional


class ProbeError(Exception):
    """Base class for all probe errors"""


class ConfigurationError(ProbeError):
    """Invalid configuration, detected before any network operation"""


class TransientIOError(ProbeError):
    """Temporary failure worth retrying"""


class DefiniteFailure(ProbeError):
    """A transient failure that exhausted the retry budget"""

    def __init__(self, message: str, attempts: int, last_error: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class PermanentIOError(ProbeError):
    """The environment itself is unusable (auth, permissions, no bucket)"""


class ConnectionCheckError(PermanentIOError):
    """The pre-flight create/retrieve/verify/delete cycle failed"""


class BackendRejection(ProbeError):
    """The request was definitively refused for this key or size"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class NotFoundError(ProbeError):
    """The object does not exist"""

    def __init__(self, key: str):
        super().__init__(f"object not found: {key!r}")
        self.key = key


class ContentMismatchError(ProbeError):
    """Retrieved content does not match created content"""

    def __init__(
        self,
        key: str,
        expected_digest: str,
        actual_digest: str,
        expected_length: int,
        actual_length: int,
    ):
        super().__init__(
            f"content mismatch for {key!r}: "
            f"expected {expected_length} bytes (sha256 {expected_digest}), "
            f"got {actual_length} bytes (sha256 {actual_digest})"
        )
        self.key = key
        self.expected_digest = expected_digest
        self.actual_digest = actual_digest
        self.expected_length = expected_length
        self.actual_length = actual_length


class CountFailure(ProbeError):
    """A count probe's objects were not all writable, visible and listed"""

    def __init__(self, count: int, failed_writes: int, missing: int, listed: int):
        super().__init__(
            f"{count} objects: {failed_writes} writes failed, "
            f"{missing} not retrievable, {listed} listed"
        )
        self.count = count
        self.failed_writes = failed_writes
        self.missing = missing
        self.listed = listed


class CleanupError(ProbeError):
    """Deleting an object failed after it was created and verified"""

    def __init__(self, key: str, cause: Exception, verified: bool = True):
        super().__init__(f"delete of {key!r} failed after verification: {cause}")
        self.key = key
        self.cause = cause
        self.verified = verified
