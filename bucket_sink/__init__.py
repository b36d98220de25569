"""
bucket_sink - buffered, size- and time-rolled objects in blob storage

This package provides:
- An object worker that streams one input's bytes into remote objects,
  committing each when it reaches a size threshold or an idle timeout
- A template engine for object names
- S3 and local filesystem storage backends
- An output boundary that keeps one worker per input tag
"""

__version__ = "0.1.0"

from bucket_sink.clock import WorkerClock
from bucket_sink.compression import Compression
from bucket_sink.errors import BucketSinkError, ConfigurationError, StorageError, TemplateError
from bucket_sink.naming import NameRenderContext, ObjectNameTemplate, render_object_name
from bucket_sink.storage import StorageClient, StorageWriter, create_storage_client
from bucket_sink.worker import CLOSED_SENTINEL, ObjectWorker, WorkerState
from bucket_sink.config import OutputConfig
from bucket_sink.output import BucketOutput, FlushResult, OutputRegistry

__all__ = [
    # Worker
    "ObjectWorker",
    "WorkerState",
    "CLOSED_SENTINEL",
    "WorkerClock",
    # Naming
    "NameRenderContext",
    "ObjectNameTemplate",
    "render_object_name",
    # Compression
    "Compression",
    # Storage
    "StorageClient",
    "StorageWriter",
    "create_storage_client",
    # Output
    "OutputConfig",
    "BucketOutput",
    "FlushResult",
    "OutputRegistry",
    # Errors
    "BucketSinkError",
    "ConfigurationError",
    "StorageError",
    "TemplateError",
]
