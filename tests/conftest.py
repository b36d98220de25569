"""Pytest fixtures for bucket_sink tests."""

import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List

import pytest

from bucket_sink.clock import WorkerClock
from bucket_sink.errors import StorageError
from bucket_sink.storage import StorageClient, StorageWriter

# 2024-02-17T00:16:00Z
FROZEN_TIME = datetime(2024, 2, 17, 0, 16, 0, tzinfo=timezone.utc)
FROZEN_TIMESTAMP = 1708128960


class RecordingWriter(StorageWriter):
    """In-memory writer that remembers everything done to it."""

    def __init__(self, bucket: str, path: str):
        self.bucket = bucket
        self.path = path
        self.buffer = bytearray()
        self.chunk_size = None
        self.close_calls = 0
        self.closed = False

    def set_chunk_size(self, size: int) -> None:
        self.chunk_size = size

    def write(self, data: bytes) -> int:
        if self.closed:
            raise StorageError(f"{self.path} is closed")
        self.buffer.extend(data)
        return len(data)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FailingWriter(RecordingWriter):
    """Writer whose write() and/or close() raise StorageError."""

    def __init__(self, bucket: str, path: str, fail_write: bool = False, fail_close: bool = False):
        super().__init__(bucket, path)
        self.fail_write = fail_write
        self.fail_close = fail_close

    def write(self, data: bytes) -> int:
        if self.fail_write:
            raise StorageError("connection reset")
        return super().write(data)

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise StorageError("finalize failed")
        self.closed = True


class ShortWriter(RecordingWriter):
    """Writer that accepts at most `limit` bytes per call."""

    def __init__(self, bucket: str, path: str, limit: int = 2):
        super().__init__(bucket, path)
        self.limit = limit
        self.write_calls = 0

    def write(self, data: bytes) -> int:
        self.write_calls += 1
        return super().write(data[: self.limit])


class RecordingStorageClient(StorageClient):
    """StorageClient that hands out in-memory writers."""

    scheme = "mem"

    def __init__(self, writer_factory=RecordingWriter):
        self.writer_factory = writer_factory
        self.writers: List[RecordingWriter] = []
        self._lock = threading.Lock()

    def open_writer(self, bucket: str, path: str) -> RecordingWriter:
        writer = self.writer_factory(bucket, path)
        with self._lock:
            self.writers.append(writer)
        return writer

    @property
    def committed(self) -> List[RecordingWriter]:
        return [w for w in self.writers if w.closed]


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll `predicate` until it is true or `timeout` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage():
    """In-memory storage client."""
    return RecordingStorageClient()


@pytest.fixture
def frozen_clock():
    """Clock pinned to FROZEN_TIME."""
    return WorkerClock(frozen_time=FROZEN_TIME)


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
