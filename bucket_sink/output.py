"""
Output boundary - what a host process drives.

An OutputRegistry holds every configured BucketOutput. Each BucketOutput
owns one ObjectWorker per input tag, created the first time that tag is
flushed and reused afterwards.

Flush results use the host's status codes:
    ERROR (0)  the batch is dropped
    OK (1)     the batch was accepted
    RETRY (2)  the host should deliver the same batch again
"""

import logging
import threading
from enum import IntEnum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from bucket_sink import __version__
from bucket_sink.clock import WorkerClock
from bucket_sink.config import OutputConfig
from bucket_sink.errors import BucketSinkError, ConfigurationError, StorageError
from bucket_sink.records import Record, format_records
from bucket_sink.storage import StorageClient, create_storage_client
from bucket_sink.worker import ObjectWorker

logger = logging.getLogger(__name__)

OUTPUT_NAME = "bucket"


class FlushResult(IntEnum):
    ERROR = 0
    OK = 1
    RETRY = 2


class BucketOutput:
    """
    One configured output instance and its per-tag workers.
    """

    def __init__(self, config: OutputConfig, storage: StorageClient, clock: Optional[WorkerClock] = None):
        self.config = config
        self.storage = storage
        self._clock = clock
        self.workers: Dict[str, ObjectWorker] = {}
        self._workers_lock = threading.Lock()

    @property
    def output_id(self) -> str:
        return self.config.output_id

    def worker_for(self, tag: str) -> ObjectWorker:
        """Return the worker for `tag`, creating it on first sight."""
        with self._workers_lock:
            worker = self.workers.get(tag)
            if worker is None:
                worker = ObjectWorker.from_config(tag, self.config, self.storage, clock=self._clock)
                self.workers[tag] = worker
                logger.debug(f"[{self.output_id}] new worker for tag {tag}")
            return worker

    def flush(self, tag: str, payload: bytes) -> FlushResult:
        """
        Hand a batch of bytes for `tag` to its worker.

        Returns:
            OK if the bytes were written, RETRY if storage failed
        """
        worker = self.worker_for(tag)
        try:
            worker.put(payload)
        except StorageError as e:
            logger.warning(f"[{self.output_id}] flush of {len(payload)} bytes for {tag} failed, retrying: {e}")
            return FlushResult.RETRY

        logger.debug(
            f"[{self.output_id}] object={worker.format_bucket_path()} written-bytes={worker.bytes_written}"
        )
        return FlushResult.OK

    def flush_records(self, tag: str, records: Iterable[Record]) -> FlushResult:
        """Format decoded records and flush them for `tag`."""
        return self.flush(tag, format_records(tag, records))

    def close(self) -> int:
        """
        Commit every open worker, best-effort.

        Returns:
            Number of workers that failed to commit
        """
        with self._workers_lock:
            workers = list(self.workers.values())

        failures = 0
        for worker in workers:
            if worker.is_streaming:
                logger.debug(f"[{self.output_id}] committing {worker.format_bucket_path()} at exit")
            if not worker.stop():
                failures += 1
        return failures


StorageFactory = Callable[[OutputConfig], StorageClient]


class OutputRegistry:
    """
    Tracks output instances for a host process.

    Created once per process and passed to whatever receives host
    callbacks; there is no module-level registry.
    """

    def __init__(self, storage_factory: StorageFactory = create_storage_client, clock: Optional[WorkerClock] = None):
        self._storage_factory = storage_factory
        self._clock = clock
        self._outputs: Dict[str, BucketOutput] = {}
        self._lock = threading.Lock()

    def register(self) -> Tuple[str, str]:
        """Name and description announced to the host."""
        return OUTPUT_NAME, f"Object storage bucket output {__version__}"

    def init(self, settings: Mapping[str, Any]) -> BucketOutput:
        """
        Configure a new output from host settings.

        Raises:
            ConfigurationError: If the settings are invalid or no storage
                client can be built; the host must not start this output
        """
        config = OutputConfig.from_settings(settings)
        return self.add(config)

    def add(self, config: OutputConfig) -> BucketOutput:
        """Register an output for an already-parsed config."""
        try:
            storage = self._storage_factory(config)
        except BucketSinkError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Could not create storage client for {config.output_id}: {e}") from e

        output = BucketOutput(config, storage, clock=self._clock)
        with self._lock:
            if config.output_id in self._outputs:
                raise ConfigurationError(f"Duplicate OutputID '{config.output_id}'")
            self._outputs[config.output_id] = output

        logger.info(
            f"initialized output {config.output_id}: bucket={config.bucket} "
            f"template={config.object_name_template!r} size={config.buffer_size_kib}KiB "
            f"timeout={config.buffer_timeout_seconds}s compression={config.compression.value}"
        )
        return output

    def get(self, output_id: str) -> BucketOutput:
        with self._lock:
            try:
                return self._outputs[output_id]
            except KeyError:
                raise KeyError(f"No output registered with OutputID '{output_id}'") from None

    @property
    def outputs(self) -> List[BucketOutput]:
        with self._lock:
            return list(self._outputs.values())

    def exit(self) -> int:
        """
        Commit every worker of every output. Never raises.

        Returns:
            Number of workers that failed to commit
        """
        failures = 0
        for output in self.outputs:
            logger.debug(f"cleaning up instance {output.output_id}")
            failures += output.close()
        if failures:
            logger.error(f"{failures} object(s) could not be committed at exit")
        return failures


__all__ = ["OUTPUT_NAME", "FlushResult", "BucketOutput", "OutputRegistry"]
