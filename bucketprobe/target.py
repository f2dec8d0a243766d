"""
Storage targets.

A target is the bucket capability the probing engine consumes: put, get,
head, delete and list, addressed by key. S3Target implements it on boto3
and translates botocore failures into the bucketprobe error taxonomy so
the retry layer and the suite can act on the error class alone.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterator, List, Optional, Protocol
from urllib.parse import urlsplit

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    IncompleteReadError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
    ResponseStreamingError,
)

from bucketprobe.errors import (
    BackendRejection,
    ConfigurationError,
    NotFoundError,
    PermanentIOError,
    ProbeError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 64 * 1024 * 1024
MULTIPART_CHUNKSIZE = 64 * 1024 * 1024


class Target(Protocol):
    """Bucket capability consumed by the probing engine"""

    def put(self, key: str, reader: BinaryIO, length: int) -> None:
        ...

    def get(self, key: str) -> BinaryIO:
        """Raises NotFoundError if the key does not exist"""
        ...

    def head(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...

    def list_keys(self, prefix: str) -> Iterator[str]:
        ...


# --------------------------------------------------------------------------------------
# Error translation
# --------------------------------------------------------------------------------------

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})

TRANSIENT_CODES = frozenset(
    {
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "TooManyRequests",
        "RequestLimitExceeded",
        "RequestTimeout",
        "ServiceUnavailable",
        "InternalError",
        "500",
        "502",
        "503",
        "504",
        "429",
    }
)

PERMANENT_CODES = frozenset(
    {
        "AccessDenied",
        "AllAccessDisabled",
        "AccountProblem",
        "InvalidAccessKeyId",
        "InvalidBucketName",
        "InvalidToken",
        "ExpiredToken",
        "NoSuchBucket",
        "RequestTimeTooSkewed",
        "SignatureDoesNotMatch",
        "401",
        "403",
    }
)

TRANSIENT_EXCEPTIONS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
    IncompleteReadError,
    ResponseStreamingError,
)

PERMANENT_EXCEPTIONS = (NoCredentialsError, PartialCredentialsError)


def translate_error(exc: BaseException, key: str) -> ProbeError:
    """Map a boto3/botocore exception to a ProbeError"""
    if isinstance(exc, ProbeError):
        return exc
    if isinstance(exc, S3UploadFailedError):
        cause = exc.__cause__ or exc.__context__
        if cause is not None and cause is not exc:
            return translate_error(cause, key)
        return BackendRejection(f"upload of {key!r} failed: {exc}")
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        message = f"{key!r}: {code or status} {error.get('Message', '')}".rstrip()
        if code in PERMANENT_CODES:
            return PermanentIOError(message)
        if code in NOT_FOUND_CODES:
            return NotFoundError(key)
        if code in TRANSIENT_CODES or status == 429 or status >= 500:
            return TransientIOError(message)
        if status in (401, 403):
            return PermanentIOError(message)
        if status == 404:
            return NotFoundError(key)
        return BackendRejection(message, code=code or None)
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return TransientIOError(f"{key!r}: {exc}")
    if isinstance(exc, PERMANENT_EXCEPTIONS):
        return PermanentIOError(str(exc))
    if isinstance(exc, UnicodeError):
        return BackendRejection(f"{key!r} cannot be encoded: {exc}", code="InvalidKeyEncoding")
    if isinstance(exc, BotoCoreError):
        return BackendRejection(f"{key!r}: {exc}")
    raise TypeError(f"cannot translate {type(exc).__name__}") from exc


# --------------------------------------------------------------------------------------
# S3 adapter
# --------------------------------------------------------------------------------------


class _TranslatingBody:
    """Streaming body whose read errors surface as ProbeErrors"""

    def __init__(self, body: Any, key: str):
        self._body = body
        self._key = key

    def read(self, size: int = -1) -> bytes:
        try:
            return self._body.read(size if size >= 0 else None)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, self._key) from e

    def close(self) -> None:
        self._body.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class S3Target:
    """
    S3-compatible bucket target.

    botocore's own retries are turned off: RetryPolicy is the only retry
    layer, so attempt counts in reports are exact.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
        verify_ssl: bool = True,
        connect_timeout: float = 10,
        read_timeout: float = 60,
        client: Any = None,
    ):
        self.bucket = bucket
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self.region = region
        self.client = client or self._build_client(
            endpoint_url=endpoint_url,
            access_key=access_key,
            secret_key=secret_key,
            region=region,
            verify_ssl=verify_ssl,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )
        self._transfer = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE,
            use_threads=False,
        )

    @staticmethod
    def _build_client(
        endpoint_url, access_key, secret_key, region, verify_ssl, connect_timeout, read_timeout
    ) -> Any:
        config = Config(
            retries={"total_max_attempts": 1, "mode": "standard"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            s3={"addressing_style": "path"} if endpoint_url else None,
        )
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            verify=verify_ssl,
            config=config,
        )

    def _key(self, key: str) -> str:
        full = self.prefix + key
        try:
            full.encode("utf-8")
        except UnicodeEncodeError as e:
            raise translate_error(e, key) from e
        return full

    def put(self, key: str, reader: BinaryIO, length: int) -> None:
        full = self._key(key)
        try:
            if length < MULTIPART_THRESHOLD:
                self.client.put_object(
                    Bucket=self.bucket, Key=full, Body=reader, ContentLength=length
                )
            else:
                self.client.upload_fileobj(reader, self.bucket, full, Config=self._transfer)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise translate_error(e, key) from e
        logger.debug("put %s (%d bytes)", full, length)

    def get(self, key: str) -> BinaryIO:
        full = self._key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=full)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, key) from e
        return _TranslatingBody(response["Body"], key)

    def head(self, key: str) -> bool:
        full = self._key(key)
        try:
            self.client.head_object(Bucket=self.bucket, Key=full)
        except (BotoCoreError, ClientError) as e:
            error = translate_error(e, key)
            if isinstance(error, NotFoundError):
                return False
            raise error from e
        return True

    def delete(self, key: str) -> None:
        full = self._key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=full)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, key) from e
        logger.debug("deleted %s", full)

    def list_keys(self, prefix: str) -> Iterator[str]:
        full = self._key(prefix)
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=full):
                for obj in page.get("Contents", []):
                    yield obj["Key"][len(self.prefix) :]
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, prefix) from e

    def __repr__(self) -> str:
        endpoint = f" via {self.endpoint_url}" if self.endpoint_url else ""
        return f"s3://{self.bucket}/{self.prefix}{endpoint}"


# --------------------------------------------------------------------------------------
# Key tracking
# --------------------------------------------------------------------------------------


class TrackingTarget:
    """
    Target wrapper recording keys that were created and not yet deleted.

    Used by the suite to report orphaned objects when a case is abandoned.
    A key is recorded before its put is sent: a put that fails with anything
    but a definite refusal may still have stored the object. Thread-safe,
    since count probes create objects from a worker pool.
    """

    def __init__(self, target: Target):
        self.target = target
        self._outstanding = set()
        self._lock = threading.Lock()

    def put(self, key: str, reader: BinaryIO, length: int) -> None:
        with self._lock:
            fresh = key not in self._outstanding
            self._outstanding.add(key)
        try:
            self.target.put(key, reader, length)
        except (BackendRejection, PermanentIOError):
            if fresh:
                self._forget(key)
            raise

    def get(self, key: str) -> BinaryIO:
        return self.target.get(key)

    def head(self, key: str) -> bool:
        return self.target.head(key)

    def delete(self, key: str) -> None:
        try:
            self.target.delete(key)
        except NotFoundError:
            self._forget(key)
            raise
        self._forget(key)

    def list_keys(self, prefix: str) -> Iterator[str]:
        return self.target.list_keys(prefix)

    def _forget(self, key: str) -> None:
        with self._lock:
            self._outstanding.discard(key)

    def outstanding(self) -> List[str]:
        with self._lock:
            return sorted(self._outstanding)

    def reset(self) -> None:
        with self._lock:
            self._outstanding.clear()

    def __repr__(self) -> str:
        return repr(self.target)


# --------------------------------------------------------------------------------------
# Bucket URLs
# --------------------------------------------------------------------------------------

SCHEMES = ("s3", "swift")


@dataclass(frozen=True)
class BucketURL:
    """Parsed scheme://bucket/prefix"""

    scheme: str
    bucket: str
    prefix: str = ""

    def __str__(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.prefix}"


def parse_bucket_url(url: str) -> BucketURL:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in SCHEMES:
        raise ConfigurationError(
            f"unsupported bucket URL scheme {parts.scheme!r} in {url!r} (expected one of {', '.join(SCHEMES)})"
        )
    if not parts.netloc:
        raise ConfigurationError(f"bucket URL {url!r} has no bucket name")
    prefix = parts.path.lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return BucketURL(scheme=scheme, bucket=parts.netloc, prefix=prefix)


def open_target(url: str, config) -> Target:
    """Build the target for a bucket URL from a ProbeConfig"""
    bucket_url = parse_bucket_url(url)
    if bucket_url.scheme == "swift":
        raise ConfigurationError(
            "no Swift adapter is available; point --endpoint at the cluster's S3 API and use s3://"
        )
    logger.info("opening %s (endpoint %s)", bucket_url, config.endpoint or "default")
    return S3Target(
        bucket=bucket_url.bucket,
        prefix=bucket_url.prefix,
        endpoint_url=config.endpoint,
        access_key=config.access_key,
        secret_key=config.secret_key,
        region=config.region,
        verify_ssl=config.verify_ssl,
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
    )
