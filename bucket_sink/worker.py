"""
ObjectWorker - manages the lifetime of buffered objects for one input stream.

A worker holds at most one open remote object. Bytes handed to put() are
written to it until either trigger fires:

    size: bytes written since open reach max_bytes (checked after each put)
    idle: idle_timeout seconds elapse after the object was opened

Either trigger commits the object, and the next put() opens a fresh one.

States:
    CLOSED ──put──> STREAMING ──put (below max_bytes)──> STREAMING
    STREAMING ──put (reaches max_bytes) / idle timer / stop()──> CLOSED

The idle timer runs on its own thread, so every state transition is taken
under a single per-worker lock. Each open bumps a generation number and the
timer only commits the generation it was armed for.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from bucket_sink.clock import WorkerClock, system_clock
from bucket_sink.compression import Compression, compress_payload
from bucket_sink.errors import StorageError
from bucket_sink.naming import NameRenderContext, ObjectNameTemplate
from bucket_sink.storage import CHUNK_SIZE, StorageClient, StorageWriter

if TYPE_CHECKING:
    from bucket_sink.config import OutputConfig

logger = logging.getLogger(__name__)

# Returned by format_bucket_path() while no object is open
CLOSED_SENTINEL = "[closed]"


class WorkerState(Enum):
    """Lifecycle state of an ObjectWorker."""
    CLOSED = "closed"
    STREAMING = "streaming"


class ObjectWorker:
    """
    Buffers one input stream into a sequence of committed objects.

    Attributes:
        tag: Identifier of the input stream, used in names and logs
        bucket: Destination bucket
        template: Compiled object name template
        max_bytes: Size threshold (post-compression bytes per object)
        idle_timeout: Seconds an object may stay open before it is committed
        compression: Compression applied to each put
    """

    def __init__(
        self,
        tag: str,
        bucket: str,
        template: Union[str, ObjectNameTemplate],
        storage: StorageClient,
        max_bytes: int = 5000 * 1024,
        idle_timeout: float = 300,
        compression: Compression = Compression.NONE,
        clock: Optional[WorkerClock] = None,
    ):
        """
        Initialize the worker in the CLOSED state.

        Raises:
            TemplateError: If `template` cannot be parsed
        """
        self.tag = tag
        self.bucket = bucket
        self.template = template if isinstance(template, ObjectNameTemplate) else ObjectNameTemplate(template)
        self.max_bytes = max_bytes
        self.idle_timeout = idle_timeout
        self.compression = compression
        self._storage = storage
        self._clock = clock or system_clock

        self._lock = threading.RLock()
        self._writer: Optional[StorageWriter] = None
        self._object_path: Optional[str] = None
        self._opened_at: Optional[datetime] = None
        self._bytes_written = 0
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    @classmethod
    def from_config(
        cls,
        tag: str,
        config: "OutputConfig",
        storage: StorageClient,
        clock: Optional[WorkerClock] = None,
    ) -> "ObjectWorker":
        """Create a worker for `tag` using an output's settings."""
        return cls(
            tag=tag,
            bucket=config.bucket,
            template=config.template,
            storage=storage,
            max_bytes=config.buffer_size_bytes,
            idle_timeout=config.buffer_timeout_seconds,
            compression=config.compression,
            clock=clock,
        )

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return WorkerState.STREAMING if self._writer is not None else WorkerState.CLOSED

    @property
    def is_streaming(self) -> bool:
        return self.state is WorkerState.STREAMING

    @property
    def object_path(self) -> Optional[str]:
        """Path of the open object, or None while closed."""
        with self._lock:
            return self._object_path

    @property
    def opened_at(self) -> Optional[datetime]:
        with self._lock:
            return self._opened_at

    @property
    def bytes_written(self) -> int:
        """Bytes written to the current (or most recent) object."""
        with self._lock:
            return self._bytes_written

    def format_bucket_path(self) -> str:
        """
        URL of the object being written.

        Returns CLOSED_SENTINEL when no object is open, never a stale path.
        """
        with self._lock:
            if self._writer is None or self._object_path is None:
                return CLOSED_SENTINEL
            return self._storage.format_url(self.bucket, self._object_path)

    def put(self, payload: bytes) -> None:
        """
        Write a payload to the current object, opening one if needed.

        Commits the object when the write brings it to max_bytes or more.

        Raises:
            StorageError: If the open, write or size-triggered commit fails.
                The caller should retry the whole payload.
        """
        with self._lock:
            if self._writer is None:
                self._begin_streaming()

            if payload:
                data = compress_payload(bytes(payload), self.compression)
                self._write_all(data)

            if self._bytes_written >= self.max_bytes:
                self._commit_locked(reason="size")

    def commit(self) -> None:
        """
        Commit the open object. A no-op while closed.

        Raises:
            StorageError: If the remote object could not be finalized. The
                worker is CLOSED afterwards either way.
        """
        with self._lock:
            self._commit_locked(reason="explicit")

    def stop(self) -> bool:
        """
        Best-effort commit used at shutdown.

        Never raises; failures are logged.

        Returns:
            True if nothing was left uncommitted
        """
        try:
            with self._lock:
                self._commit_locked(reason="shutdown")
            return True
        except Exception:
            logger.exception(f"Failed to commit {self.tag} during shutdown")
            return False

    def _begin_streaming(self) -> None:
        opened_at = self._clock.now()
        context = NameRenderContext.capture(self.tag, opened_at, with_uuid=self.template.uses_uuid)
        object_path = self.template.render(context, self.compression)

        try:
            writer = self._storage.open_writer(self.bucket, object_path)
            writer.set_chunk_size(CHUNK_SIZE)
        except StorageError:
            raise
        except Exception as e:
            url = self._storage.format_url(self.bucket, object_path)
            raise StorageError(f"Failed to open {url}: {e}") from e

        self._writer = writer
        self._object_path = object_path
        self._opened_at = opened_at
        self._bytes_written = 0
        self._generation += 1
        self._start_timer(self._generation)

        logger.debug(f"Opened {self.format_bucket_path()} for {self.tag}")

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            try:
                written = self._writer.write(view.tobytes())
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to write to {self.format_bucket_path()}: {e}") from e
            if not written or written < 0:
                raise StorageError(f"Short write to {self.format_bucket_path()}")
            self._bytes_written += written
            view = view[written:]

    def _start_timer(self, generation: int) -> None:
        self._cancel_timer()
        timer = threading.Timer(self.idle_timeout, self._on_idle_timeout, args=(generation,))
        timer.daemon = True
        timer.name = f"bucket-sink-idle-{self.tag}"
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle_timeout(self, generation: int) -> None:
        with self._lock:
            if self._writer is None or generation != self._generation:
                return
            logger.debug(
                f"committing {self.format_bucket_path()} after {self.idle_timeout:.1f}s without a commit"
            )
            try:
                self._commit_locked(reason="idle")
            except Exception:
                logger.exception(f"Idle commit failed for {self.tag}")

    def _commit_locked(self, reason: str) -> None:
        if self._writer is None:
            return

        url = self.format_bucket_path()
        writer = self._writer
        self._cancel_timer()
        self._writer = None
        self._object_path = None

        try:
            writer.close()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to commit {url}: {e}") from e

        logger.info(f"committed {url} ({self._bytes_written / 1024.0:.1f} KiB, {reason})")

    def __repr__(self) -> str:
        return f"ObjectWorker(tag={self.tag!r}, state={self.state.value}, object={self.format_bucket_path()!r})"


__all__ = ["CLOSED_SENTINEL", "ObjectWorker", "WorkerState"]
