"""
S3 storage backend.

Objects are streamed with the multipart upload API. Bytes are buffered in
memory until a full part is available; objects smaller than one part are
sent with a single put_object when they are closed.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from bucket_sink.errors import StorageError
from bucket_sink.storage import CHUNK_SIZE, StorageClient, StorageWriter

logger = logging.getLogger(__name__)

# S3 rejects non-final multipart parts smaller than this
S3_MIN_PART_SIZE = 5 * 1024 * 1024

_S3_ERRORS = (BotoCoreError, ClientError)


class S3ObjectWriter(StorageWriter):
    """
    Streams one S3 object.

    With a chunk size of at least CHUNK_SIZE the writer uploads a part each
    time max(chunk_size, S3_MIN_PART_SIZE) bytes have accumulated. Below
    that, buffering is disabled and the whole object is uploaded at close.
    Nothing is sent before close() in that mode, so the entire object is
    held in memory; its size is bounded only by the caller's commit
    threshold.

    Errors are sticky: once an upload call fails, every later write and the
    final close raise StorageError.
    """

    def __init__(self, client: Any, bucket: str, key: str, content_type: str = "application/octet-stream"):
        self._client = client
        self.bucket = bucket
        self.key = key
        self.content_type = content_type
        self._chunk_size = 0
        self._buffer = bytearray()
        self._upload_id: Optional[str] = None
        self._parts: List[Dict[str, Any]] = []
        self._started = False
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @property
    def buffering(self) -> bool:
        return self._chunk_size >= CHUNK_SIZE

    @property
    def part_size(self) -> int:
        return max(self._chunk_size, S3_MIN_PART_SIZE)

    @property
    def parts_uploaded(self) -> int:
        return len(self._parts)

    def set_chunk_size(self, size: int) -> None:
        if self._started:
            raise ValueError("chunk size must be set before the first write")
        self._chunk_size = size

    def write(self, data: bytes) -> int:
        if self._closed:
            raise StorageError(f"{self.url} is already closed")
        self._raise_if_failed()
        self._started = True
        self._buffer.extend(data)

        if self.buffering:
            part_size = self.part_size
            while len(self._buffer) >= part_size:
                part = bytes(self._buffer[:part_size])
                del self._buffer[:part_size]
                self._upload_part(part)

        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._raise_if_failed(abort=True)

        if self._upload_id is None:
            try:
                self._client.put_object(
                    Bucket=self.bucket,
                    Key=self.key,
                    Body=bytes(self._buffer),
                    ContentType=self.content_type,
                )
            except _S3_ERRORS as e:
                raise StorageError(f"Failed to upload {self.url}: {e}") from e
            finally:
                self._buffer.clear()
            return

        try:
            if self._buffer:
                self._upload_part(bytes(self._buffer))
                self._buffer.clear()
            self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self._upload_id,
                MultipartUpload={"Parts": self._parts},
            )
        except _S3_ERRORS as e:
            self._abort()
            raise StorageError(f"Failed to complete {self.url}: {e}") from e
        except StorageError:
            self._abort()
            raise

        logger.debug(f"Completed multipart upload of {self.url} in {len(self._parts)} parts")

    def _upload_part(self, part: bytes) -> None:
        try:
            if self._upload_id is None:
                response = self._client.create_multipart_upload(
                    Bucket=self.bucket,
                    Key=self.key,
                    ContentType=self.content_type,
                )
                self._upload_id = response["UploadId"]

            part_number = len(self._parts) + 1
            response = self._client.upload_part(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self._upload_id,
                PartNumber=part_number,
                Body=part,
            )
            self._parts.append({"PartNumber": part_number, "ETag": response["ETag"]})
        except _S3_ERRORS as e:
            self._error = e
            raise StorageError(f"Failed to upload part of {self.url}: {e}") from e

    def _abort(self) -> None:
        if self._upload_id is None:
            return
        upload_id, self._upload_id = self._upload_id, None
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=upload_id,
            )
        except _S3_ERRORS as e:
            logger.error(f"Failed to abort multipart upload of {self.url}: {e}")

    def _raise_if_failed(self, abort: bool = False) -> None:
        if self._error is None:
            return
        if abort:
            self._abort()
        raise StorageError(f"{self.url} is unusable after an earlier failure: {self._error}")


class S3StorageClient(StorageClient):
    """
    Opens S3ObjectWriter handles against a shared boto3 client.

    boto3 clients are thread-safe, so one instance serves every worker of
    an output.
    """

    scheme = "s3"

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize the S3 storage client.

        Args:
            region: AWS region; boto3's default resolution applies if None
            endpoint_url: Override for S3-compatible stores
            client: Pre-built boto3 S3 client (skips lazy creation)
        """
        self.region = region
        self.endpoint_url = endpoint_url
        self._s3_client = client
        self._client_lock = threading.Lock()

    @property
    def s3_client(self) -> Any:
        """Lazy initialize the boto3 S3 client."""
        with self._client_lock:
            if self._s3_client is None:
                kwargs: Dict[str, Any] = {}
                if self.region:
                    kwargs["region_name"] = self.region
                if self.endpoint_url:
                    kwargs["endpoint_url"] = self.endpoint_url
                try:
                    self._s3_client = boto3.client("s3", **kwargs)
                except _S3_ERRORS as e:
                    raise StorageError(f"Failed to create S3 client: {e}") from e
            return self._s3_client

    def open_writer(self, bucket: str, path: str) -> S3ObjectWriter:
        content_type = "application/gzip" if path.endswith(".gz") else "application/octet-stream"
        return S3ObjectWriter(self.s3_client, bucket, path, content_type=content_type)


__all__ = ["S3_MIN_PART_SIZE", "S3ObjectWriter", "S3StorageClient"]
