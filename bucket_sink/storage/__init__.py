"""
Storage writer interfaces and implementations.

The object worker only ever talks to a StorageClient and the StorageWriter
handles it opens. Concrete backends:
    S3StorageClient: multipart uploads through boto3 (storage/s3.py)
    LocalStorageClient: files under a local root directory (storage/local.py)
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from bucket_sink.errors import ConfigurationError

if TYPE_CHECKING:
    from bucket_sink.config import OutputConfig

# Smallest chunk size that still enables internal buffering in a writer
CHUNK_SIZE = 256 * 1024


class StorageWriter(ABC):
    """
    Write handle for a single remote object.

    The object becomes visible in the store only once close() succeeds.
    """

    @abstractmethod
    def set_chunk_size(self, size: int) -> None:
        """
        Set the preferred internal buffer size.

        Must be called before the first write. Values below CHUNK_SIZE
        disable internal buffering.
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write bytes to the object.

        Returns:
            Number of bytes accepted

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Flush and finalize the remote object.

        Raises:
            StorageError: If the object could not be committed
        """
        pass


class StorageClient(ABC):
    """
    Factory for StorageWriter handles.

    A single client is shared by every worker of an output, so
    implementations must be safe for concurrent use.
    """

    scheme = "blob"

    @abstractmethod
    def open_writer(self, bucket: str, path: str) -> StorageWriter:
        """
        Open a write stream for bucket/path.

        Raises:
            StorageError: If the stream cannot be opened
        """
        pass

    def format_url(self, bucket: str, path: str) -> str:
        """Addressable URL of an object, used for logging."""
        return f"{self.scheme}://{bucket}/{path}"


def create_storage_client(config: "OutputConfig") -> StorageClient:
    """
    Build the storage client selected by an output's configuration.

    Raises:
        ConfigurationError: If the storage type is unknown
    """
    if config.storage_type == "s3":
        from bucket_sink.storage.s3 import S3StorageClient
        return S3StorageClient(region=config.region, endpoint_url=config.endpoint_url)
    if config.storage_type == "local":
        from bucket_sink.storage.local import LocalStorageClient
        return LocalStorageClient(config.local_path)
    raise ConfigurationError(f"Unknown storage type '{config.storage_type}'")


__all__ = ["CHUNK_SIZE", "StorageWriter", "StorageClient", "create_storage_client"]
