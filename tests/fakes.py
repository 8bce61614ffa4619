"""
Failure-injecting buckets for the proxy tests.

They extend the in-memory bucket so error paths can be exercised
without a real backend, and record every reader and writer handed out
so tests can check streams were closed.
"""

from storage_proxy.infrastructure.storage.client import (
    MockBucketHandle,
    MockObjectHandle,
    MockObjectReader,
    MockObjectWriter,
    StorageError,
)

TEST_PREFIX = "cache/"


class RecordingBucket(MockBucketHandle):
    """Mock bucket that remembers every reader and writer it hands out."""

    writer_class = MockObjectWriter
    reader_class = MockObjectReader

    def __init__(self, name: str = "test-bucket") -> None:
        super().__init__(name)
        self.writers: list[MockObjectWriter] = []
        self.readers: list[MockObjectReader] = []

    def object(self, key: str) -> "RecordingObjectHandle":
        return RecordingObjectHandle(self, key)


class RecordingObjectHandle(MockObjectHandle):
    def new_reader(self):
        reader = self._bucket.reader_class(self.key, self._bucket.get(self.key))
        self._bucket.readers.append(reader)
        return reader

    def new_writer(self):
        writer = self._bucket.writer_class(self._bucket, self.key)
        self._bucket.writers.append(writer)
        return writer


class FailingWriteWriter(MockObjectWriter):
    """Accepts the first write, then fails like a dropped connection."""

    def write(self, data: bytes) -> int:
        if self._buffer:
            raise StorageError("connection reset by peer")
        return super().write(data)


class FailingFlushWriter(MockObjectWriter):
    def flush(self) -> None:
        raise StorageError("commit rejected")


class FailingReadReader(MockObjectReader):
    """Returns one chunk, then fails mid-stream."""

    def read(self, size: int = -1) -> bytes:
        if self._offset:
            raise StorageError("stream interrupted")
        return super().read(size)


class FailingWriteBucket(RecordingBucket):
    writer_class = FailingWriteWriter


class FailingFlushBucket(RecordingBucket):
    writer_class = FailingFlushWriter


class FailingReadBucket(RecordingBucket):
    reader_class = FailingReadReader


class UnreachableBucket(MockBucketHandle):
    """Every lookup fails with a non-404 storage error."""

    def stat(self, key: str):
        raise StorageError("access denied")
