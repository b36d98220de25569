"""
Object name rendering.

Templates use double-brace placeholders. Whitespace inside the braces and a
leading dot are tolerated, so "{{tag}}", "{{ tag }}" and "{{ .InputTag }}"
are equivalent.

Recognised placeholders (aliases in parentheses):
    tag (InputTag)            input tag of the stream, e.g. "cpu"
    timestamp (Timestamp)     unix seconds when the object was opened
    isoDateTime (IsoDateTime) YYYYMMDDThhmmssZ, UTC
    year (Yyyy)               4-digit year, UTC
    month (Mm)                2-digit zero-padded month, UTC
    day (Dd)                  2-digit zero-padded day, UTC
    uuid (Uuid)               random UUID4, drawn once per opened object

Anything else is rejected when the template is compiled.
"""

import re
import uuid as uuid_module
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union

from bucket_sink.compression import Compression
from bucket_sink.errors import TemplateError

DEFAULT_OBJECT_NAME_TEMPLATE = "{{ tag }}-{{ timestamp }}"

ISO_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"

PLACEHOLDER_ALIASES: Dict[str, str] = {
    "tag": "tag",
    "InputTag": "tag",
    "timestamp": "timestamp",
    "Timestamp": "timestamp",
    "isoDateTime": "iso_datetime",
    "IsoDateTime": "iso_datetime",
    "year": "year",
    "Yyyy": "year",
    "month": "month",
    "Mm": "month",
    "day": "day",
    "Dd": "day",
    "uuid": "uuid",
    "Uuid": "uuid",
}

_PLACEHOLDER_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_NAME_RE = re.compile(r"^\.?([A-Za-z_][A-Za-z0-9_]*)$")


@dataclass(frozen=True)
class NameRenderContext:
    """
    Snapshot of "when this object opened", consumed once by the renderer.

    Attributes:
        tag: Input tag of the owning worker
        opened_at: Aware UTC datetime the object was opened
        year: 4-digit year
        month: 2-digit month
        day: 2-digit day
        iso_datetime: Compact ISO-8601 UTC datetime (16 characters)
        timestamp: Unix seconds
        uuid: Random identifier, only present if the template asked for it
    """
    tag: str
    opened_at: datetime
    year: str
    month: str
    day: str
    iso_datetime: str
    timestamp: int
    uuid: Optional[str] = None

    @classmethod
    def capture(cls, tag: str, opened_at: datetime, with_uuid: bool = False) -> "NameRenderContext":
        """Build a context for an object opened at `opened_at`."""
        if opened_at.tzinfo is None:
            opened_at = opened_at.replace(tzinfo=timezone.utc)
        utc = opened_at.astimezone(timezone.utc)
        return cls(
            tag=tag,
            opened_at=utc,
            year=f"{utc.year:04d}",
            month=f"{utc.month:02d}",
            day=f"{utc.day:02d}",
            iso_datetime=utc.strftime(ISO_DATETIME_FORMAT),
            timestamp=int(utc.timestamp()),
            uuid=str(uuid_module.uuid4()) if with_uuid else None,
        )


# A compiled template is a sequence of literal strings and placeholder keys
_Segment = Tuple[bool, str]


class ObjectNameTemplate:
    """
    A validated object name template.

    Compilation happens in the constructor so that a bad template fails
    when the worker or output is built, never on the write path.
    """

    def __init__(self, source: str):
        self.source = source
        self._segments: List[_Segment] = self._compile(source)

    @staticmethod
    def _compile(source: str) -> List[_Segment]:
        if not source or not source.strip():
            raise TemplateError(source, "template is empty")

        segments: List[_Segment] = []
        position = 0
        for match in _PLACEHOLDER_RE.finditer(source):
            literal = source[position:match.start()]
            ObjectNameTemplate._check_literal(source, literal)
            if literal:
                segments.append((False, literal))

            inner = match.group(1).strip()
            name_match = _NAME_RE.match(inner)
            if name_match is None:
                raise TemplateError(source, f"cannot parse placeholder '{{{{{match.group(1)}}}}}'")
            name = name_match.group(1)
            if name not in PLACEHOLDER_ALIASES:
                raise TemplateError(source, f"unsupported placeholder '{name}'")
            segments.append((True, PLACEHOLDER_ALIASES[name]))
            position = match.end()

        tail = source[position:]
        ObjectNameTemplate._check_literal(source, tail)
        if tail:
            segments.append((False, tail))
        return segments

    @staticmethod
    def _check_literal(source: str, literal: str) -> None:
        if "{{" in literal:
            raise TemplateError(source, "unterminated '{{'")
        if "}}" in literal:
            raise TemplateError(source, "unmatched '}}'")

    @property
    def placeholders(self) -> List[str]:
        """Canonical placeholder names used, in order of appearance."""
        return [value for is_placeholder, value in self._segments if is_placeholder]

    @property
    def uses_uuid(self) -> bool:
        return "uuid" in self.placeholders

    def render(self, context: NameRenderContext, compression: Compression = Compression.NONE) -> str:
        """
        Expand the template against a context.

        Args:
            context: Snapshot of the object being opened
            compression: Mode of the worker; GZIP appends ".gz"

        Returns:
            The object path
        """
        parts = []
        for is_placeholder, value in self._segments:
            if not is_placeholder:
                parts.append(value)
                continue
            resolved = getattr(context, value)
            if resolved is None:
                raise TemplateError(self.source, f"context has no value for '{value}'")
            parts.append(str(resolved))
        return "".join(parts) + compression.suffix

    def __repr__(self) -> str:
        return f"ObjectNameTemplate({self.source!r})"


def render_object_name(
    template: Union[str, ObjectNameTemplate],
    context: NameRenderContext,
    compression: Compression = Compression.NONE,
) -> str:
    """Render a template (compiling it first if given as a string)."""
    if isinstance(template, str):
        template = ObjectNameTemplate(template)
    return template.render(context, compression)


__all__ = [
    "DEFAULT_OBJECT_NAME_TEMPLATE",
    "NameRenderContext",
    "ObjectNameTemplate",
    "render_object_name",
]
