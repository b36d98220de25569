"""
Record formatting for flushes.

A host delivers a batch of decoded records for a tag; each becomes one line
of the payload handed to the worker:

    <tag>: [<unix seconds with microseconds>, {<fields>}]\n
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

Timestamp = Union[datetime, int, float]
Record = Tuple[Timestamp, Mapping[Any, Any]]


def _seconds(ts: Timestamp) -> float:
    if isinstance(ts, datetime):
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return round(ts.timestamp(), 6)
    return float(ts)


def _field_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return _fields(value)
    if isinstance(value, (list, tuple)):
        return [_field_value(v) for v in value]
    return value


def _fields(record: Mapping[Any, Any]) -> Dict[str, Any]:
    return {
        (k.decode("utf-8", errors="replace") if isinstance(k, (bytes, bytearray)) else str(k)): _field_value(v)
        for k, v in record.items()
    }


def format_record(tag: str, timestamp: Timestamp, fields: Mapping[Any, Any]) -> str:
    """Format a single record as one payload line (including newline)."""
    body = json.dumps([_seconds(timestamp), _fields(fields)], default=str)
    return f"{tag}: {body}\n"


def format_records(tag: str, records: Iterable[Record]) -> bytes:
    """
    Format a batch of records into the bytes written for one flush.

    Args:
        tag: Tag of the input the records came from
        records: (timestamp, fields) pairs

    Returns:
        UTF-8 encoded payload
    """
    return "".join(format_record(tag, ts, fields) for ts, fields in records).encode("utf-8")


__all__ = ["format_record", "format_records"]
