"""
Payload compression for object workers.

Each call to compress_payload() produces a complete, self-contained gzip
member. An object built from several puts is therefore a concatenation of
gzip members. gzip.decompress(), `zcat` and GzipFile all
read such a file back as one continuous stream. No compressor state outlives
a put, so an object can be committed at any point between puts.
"""

import gzip
from enum import Enum
from typing import Optional


class Compression(Enum):
    """Compression applied to bytes before they are written to an object."""
    NONE = "none"
    GZIP = "gzip"

    @property
    def suffix(self) -> str:
        """Extension appended to object names written in this mode."""
        return ".gz" if self is Compression.GZIP else ""

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Compression"]:
        """
        Look up a mode by name, case-insensitively.

        Returns None for blank or unrecognised values so callers can decide
        on a default.
        """
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def compress_payload(payload: bytes, mode: Compression) -> bytes:
    """
    Encode one put's payload for the given mode.

    Args:
        payload: Raw bytes handed to the worker
        mode: Compression mode of the worker

    Returns:
        The bytes to write to the remote object
    """
    if mode is Compression.GZIP:
        return gzip.compress(payload)
    return payload


__all__ = ["Compression", "compress_payload"]
