"""
Local filesystem storage backend.

Objects are laid out as:
    {root}/{bucket}/{path}

Bytes go to a ".partial" sibling while the object is open; close() renames
it into place, so a reader never observes an uncommitted object.
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Union

from bucket_sink.errors import StorageError
from bucket_sink.storage import CHUNK_SIZE, StorageClient, StorageWriter

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


class LocalObjectWriter(StorageWriter):
    """Writes one object to a file, committed by rename on close()."""

    def __init__(self, final_path: Path):
        self.final_path = final_path
        self.partial_path = final_path.with_name(final_path.name + PARTIAL_SUFFIX)
        self._chunk_size = 0
        self._file: Optional[BinaryIO] = None
        self._closed = False

    def set_chunk_size(self, size: int) -> None:
        if self._file is not None:
            raise ValueError("chunk size must be set before the first write")
        self._chunk_size = size

    def _open(self) -> BinaryIO:
        # buffering=0 makes every write reach the OS immediately
        buffering = self._chunk_size if self._chunk_size >= CHUNK_SIZE else 0
        try:
            self.partial_path.parent.mkdir(parents=True, exist_ok=True)
            return open(self.partial_path, "wb", buffering=buffering)
        except OSError as e:
            raise StorageError(f"Failed to open {self.partial_path}: {e}") from e

    def write(self, data: bytes) -> int:
        if self._closed:
            raise StorageError(f"{self.final_path} is already closed")
        if self._file is None:
            self._file = self._open()
        try:
            written = self._file.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {self.partial_path}: {e}") from e
        return written if written is not None else 0

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._file is None:
            # Nothing was written; still commit an empty object
            self._file = self._open()
        try:
            try:
                self._file.flush()
                os.fsync(self._file.fileno())
            finally:
                self._file.close()
            os.replace(self.partial_path, self.final_path)
        except OSError as e:
            self._discard_partial()
            raise StorageError(f"Failed to commit {self.final_path}: {e}") from e

        logger.debug(f"Wrote {self.final_path}")

    def _discard_partial(self) -> None:
        try:
            self.partial_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove {self.partial_path}: {e}")


class LocalStorageClient(StorageClient):
    """
    Stores objects beneath a root directory.

    Useful for development and dry runs where no bucket is available.
    """

    scheme = "file"

    def __init__(self, root: Union[str, Path] = "./objects"):
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        bucket_dir = (self.root / bucket).resolve()
        target = (bucket_dir / path).resolve()
        if bucket_dir != target and bucket_dir not in target.parents:
            raise StorageError(f"Object path '{path}' escapes bucket '{bucket}'")
        return target

    def open_writer(self, bucket: str, path: str) -> LocalObjectWriter:
        return LocalObjectWriter(self._resolve(bucket, path))

    def format_url(self, bucket: str, path: str) -> str:
        return f"file://{self.root.resolve() / bucket / path}"


__all__ = ["LocalObjectWriter", "LocalStorageClient"]
