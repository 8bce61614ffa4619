"""
Object storage client for the proxy.

Supports S3-compatible storage (AWS S3, Cloudflare R2, MinIO) with an
in-memory mode for local development and tests.

The proxy never talks to boto3 directly. It sees a bucket handle that
resolves keys to object handles, and object handles that open readers,
writers and attribute lookups. SDK errors are translated into
StorageError / ObjectNotFoundError here so the HTTP layer stays
SDK-agnostic.
"""

import logging
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import IO, Optional, Protocol

logger = logging.getLogger(__name__)

# botocore reports a missing object with any of these codes depending on
# the operation (HEAD has no body, so it only carries the status code)
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""
    pass


@dataclass
class StorageConfig:
    """
    Configuration for S3-compatible storage.

    Empty credentials fall back to the boto3 credential chain
    (environment, shared config, instance profile).
    """
    bucket_name: str
    endpoint_url: Optional[str] = None
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = "us-east-1"
    spool_max_bytes: int = 8 * 1024 * 1024


@dataclass
class ObjectAttributes:
    """Backend-reported properties of a stored object."""
    key: str
    size: int
    content_type: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None


class ObjectReader(Protocol):
    """Read stream over an object's content."""

    def read(self, size: int = -1) -> bytes:
        ...

    def close(self) -> None:
        ...


class ObjectWriter(Protocol):
    """
    Write stream for an object.

    Bytes written are not visible in the bucket until flush() succeeds.
    close() releases the writer; closing without a flush abandons the
    upload.
    """

    def write(self, data: bytes) -> int:
        ...

    def flush(self) -> None:
        ...

    def close(self) -> None:
        ...


class ObjectHandle(Protocol):
    """Reference to a single object. Creating one performs no I/O."""

    key: str

    def new_reader(self) -> ObjectReader:
        """Open a read stream. Raises ObjectNotFoundError if absent."""
        ...

    def new_writer(self) -> ObjectWriter:
        """Open a write stream that creates or overwrites the object."""
        ...

    def attrs(self) -> ObjectAttributes:
        """Fetch object metadata. Raises ObjectNotFoundError if absent."""
        ...


class BucketHandle(Protocol):
    """A bucket that resolves keys to object handles."""

    name: str

    def object(self, key: str) -> ObjectHandle:
        ...


class _ClosingMixin:
    """Context manager support for readers and writers."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ---------------------------------------------------------------------------
# S3-compatible Storage
# ---------------------------------------------------------------------------

def _is_not_found(error: Exception) -> bool:
    response = getattr(error, "response", None) or {}
    code = str(response.get("Error", {}).get("Code", ""))
    return code in _NOT_FOUND_CODES


class S3ObjectReader(_ClosingMixin):
    """Streams a get_object response body."""

    def __init__(self, key: str, body) -> None:
        self.key = key
        self._body = body

    def read(self, size: int = -1) -> bytes:
        try:
            if size is None or size < 0:
                return self._body.read()
            return self._body.read(size)
        except Exception as e:
            raise StorageError(f"Read failed for {self.key}: {e}") from e

    def close(self) -> None:
        self._body.close()


class S3ObjectWriter(_ClosingMixin):
    """
    Spools written bytes and commits them with put_object on flush.

    The spool stays in memory up to spool_max_bytes and rolls over to a
    temporary file beyond that, so large uploads don't pin memory.
    """

    def __init__(self, s3_client, bucket_name: str, key: str, spool_max_bytes: int) -> None:
        self.key = key
        self._s3_client = s3_client
        self._bucket_name = bucket_name
        self._buffer: IO[bytes] = tempfile.SpooledTemporaryFile(max_size=spool_max_bytes)
        self._size = 0
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            raise StorageError(f"Writer for {self.key} is closed")
        try:
            written = self._buffer.write(data)
        except OSError as e:
            raise StorageError(f"Spooling upload for {self.key} failed: {e}") from e
        self._size += written
        return written

    def flush(self) -> None:
        if self._closed:
            raise StorageError(f"Writer for {self.key} is closed")

        self._buffer.seek(0)
        try:
            self._s3_client.put_object(
                Bucket=self._bucket_name,
                Key=self.key,
                Body=self._buffer,
                ContentLength=self._size,
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": self.key, "size_bytes": self._size, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e
        finally:
            self._buffer.seek(0, 2)

        logger.debug(
            "Uploaded object",
            extra={"key": self.key, "size_bytes": self._size}
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.close()


class S3ObjectHandle:
    """Object handle backed by an S3 client."""

    def __init__(self, bucket: "S3BucketHandle", key: str) -> None:
        self._bucket = bucket
        self.key = key

    def new_reader(self) -> S3ObjectReader:
        try:
            response = self._bucket.s3_client.get_object(
                Bucket=self._bucket.name,
                Key=self.key,
            )
        except Exception as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(f"Object not found: {self.key}") from e
            raise StorageError(f"Download failed: {e}") from e

        return S3ObjectReader(self.key, response["Body"])

    def new_writer(self) -> S3ObjectWriter:
        return S3ObjectWriter(
            self._bucket.s3_client,
            self._bucket.name,
            self.key,
            self._bucket.config.spool_max_bytes,
        )

    def attrs(self) -> ObjectAttributes:
        try:
            response = self._bucket.s3_client.head_object(
                Bucket=self._bucket.name,
                Key=self.key,
            )
        except Exception as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(f"Object not found: {self.key}") from e
            raise StorageError(f"Metadata lookup failed: {e}") from e

        return ObjectAttributes(
            key=self.key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            etag=response.get("ETag"),
            last_modified=response.get("LastModified"),
        )


class S3BucketHandle:
    """
    S3-compatible bucket handle.

    Uses boto3 because R2 and MinIO speak the S3 API; swapping providers
    only means changing the endpoint. boto3 clients are thread-safe, so
    one handle is shared by every request.
    """

    def __init__(self, config: StorageConfig, s3_client=None) -> None:
        self.config = config
        self.name = config.bucket_name

        if s3_client is None:
            import boto3
            from botocore.config import Config

            boto_config = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
            )
            s3_client = boto3.client(
                "s3",
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id or None,
                aws_secret_access_key=config.secret_access_key or None,
                region_name=config.region,
                config=boto_config,
            )

        self.s3_client = s3_client

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    def object(self, key: str) -> S3ObjectHandle:
        return S3ObjectHandle(self, key)


# ---------------------------------------------------------------------------
# In-memory Storage for Local Development
# ---------------------------------------------------------------------------

class MockObjectReader(_ClosingMixin):
    def __init__(self, key: str, data: bytes) -> None:
        self.key = key
        self._data = data
        self._offset = 0
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise StorageError(f"Reader for {self.key} is closed")
        if size is None or size < 0:
            size = len(self._data) - self._offset
        chunk = self._data[self._offset:self._offset + size]
        self._offset += len(chunk)
        return chunk

    def close(self) -> None:
        self.closed = True


class MockObjectWriter(_ClosingMixin):
    """Buffers writes and publishes them to the bucket on flush."""

    def __init__(self, bucket: "MockBucketHandle", key: str) -> None:
        self.key = key
        self._bucket = bucket
        self._buffer = bytearray()
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise StorageError(f"Writer for {self.key} is closed")
        self._buffer.extend(data)
        return len(data)

    def flush(self) -> None:
        if self.closed:
            raise StorageError(f"Writer for {self.key} is closed")
        self._bucket.put(self.key, bytes(self._buffer))

    def close(self) -> None:
        self.closed = True


class MockObjectHandle:
    def __init__(self, bucket: "MockBucketHandle", key: str) -> None:
        self._bucket = bucket
        self.key = key

    def new_reader(self) -> MockObjectReader:
        return MockObjectReader(self.key, self._bucket.get(self.key))

    def new_writer(self) -> MockObjectWriter:
        return MockObjectWriter(self._bucket, self.key)

    def attrs(self) -> ObjectAttributes:
        data, modified = self._bucket.stat(self.key)
        return ObjectAttributes(key=self.key, size=len(data), last_modified=modified)


class MockBucketHandle:
    """
    In-memory bucket for local development.

    Objects live in a dictionary guarded by a lock so concurrent requests
    see whole objects only. Not suitable for production, but enough to
    exercise the full proxy without provisioning real storage.
    """

    def __init__(self, name: str = "mock-bucket") -> None:
        self.name = name
        # {key: (data, last_modified)}
        self._objects: dict[str, tuple[bytes, datetime]] = {}
        self._lock = threading.Lock()
        logger.info("Initialized mock storage client (in-memory)")

    def object(self, key: str) -> MockObjectHandle:
        return MockObjectHandle(self, key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = (data, datetime.now(timezone.utc))

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(data)}
        )

    def get(self, key: str) -> bytes:
        return self.stat(key)[0]

    def stat(self, key: str) -> tuple[bytes, datetime]:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFoundError(f"Object not found: {key}")
        return entry

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_bucket_handle(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> BucketHandle:
    """
    Create a bucket handle based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return an in-memory bucket

    Returns:
        BucketHandle implementation (S3 or Mock)
    """
    if mock_mode:
        name = config.bucket_name if config and config.bucket_name else "mock-bucket"
        return MockBucketHandle(name)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3BucketHandle(config)
