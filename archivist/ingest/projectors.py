"""
Archivist - Type Projectors

A projector turns a validated envelope into the narrow record stored in the
index table for its content type. Projection is data-driven: each type is a
TypeSchema listing its fields, and one generic TypeProjector applies it.

Rules applied by every projector:

1. The envelope's discriminator must match the schema (RoutingError otherwise;
   a routing failure is not a validation failure).
2. Required fields are checked in declared order. The first one that is
   absent or of the wrong primitive type raises EnvelopeValidationError.
   Nothing is written for a partially valid document.
3. Optional fields fall back to their default when absent or mistyped.
4. Every record carries the envelope id and the object key it came from.

Booleans are never accepted where a number is expected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from archivist.core.errors import EnvelopeValidationError, RoutingError
from archivist.models.envelope import ContentEnvelope

FieldKind = Literal["string", "number", "integer", "boolean", "timestamp"]

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_EXPECTED = {
    "string": "string",
    "number": "number",
    "integer": "integer",
    "boolean": "boolean",
    "timestamp": "ISO-8601 string or Unix seconds",
}


class _Invalid(ValueError):
    """Internal marker: value present but not coercible to the field kind."""


def parse_timestamp(value: Any) -> datetime:
    """
    Normalize a timestamp to a timezone-aware UTC datetime.

    Accepts ISO-8601 date or date-time strings (a trailing "Z" is allowed,
    naive values are taken as UTC) and Unix seconds as int or float.
    """
    if isinstance(value, bool):
        raise _Invalid()

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise _Invalid() from e

    if not isinstance(value, str) or not value.strip():
        raise _Invalid()

    text = value.strip()
    try:
        if _DATE_ONLY.match(text):
            parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
        else:
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise _Invalid() from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _coerce(kind: FieldKind, value: Any) -> Any:
    if kind == "string":
        if isinstance(value, str):
            return value
    elif kind == "boolean":
        if isinstance(value, bool):
            return value
    elif kind == "integer":
        if isinstance(value, bool):
            raise _Invalid()
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif kind == "number":
        if isinstance(value, bool):
            raise _Invalid()
        if isinstance(value, (int, float)):
            return value
    elif kind == "timestamp":
        return parse_timestamp(value)
    raise _Invalid()


@dataclass(frozen=True)
class FieldSpec:
    """One field of a content type's projection."""

    source: str
    kind: FieldKind
    required: bool = True
    default: Any = None
    target: str | None = None

    @property
    def column(self) -> str:
        return self.target or self.source

    def extract(self, data: dict[str, Any]) -> Any:
        """Read and coerce this field from envelope data."""
        value = data.get(self.source)

        if self.required:
            if value is None:
                raise EnvelopeValidationError(self.source, _EXPECTED[self.kind])
            try:
                return _coerce(self.kind, value)
            except _Invalid:
                raise EnvelopeValidationError(self.source, _EXPECTED[self.kind]) from None

        if value is None:
            return self.default
        try:
            return _coerce(self.kind, value)
        except _Invalid:
            return self.default


def required(source: str, kind: FieldKind) -> FieldSpec:
    return FieldSpec(source=source, kind=kind)


def optional(source: str, kind: FieldKind, default: Any = None) -> FieldSpec:
    return FieldSpec(source=source, kind=kind, required=False, default=default)


@dataclass(frozen=True)
class TypeSchema:
    content_type: str
    table: str
    fields: tuple[FieldSpec, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class IndexRecord:
    """A projected row and the table it belongs in."""

    table: str
    row: dict[str, Any]

    @property
    def id(self) -> str:
        return self.row["id"]


class TypeProjector:
    """Projects envelopes of one content type into index records."""

    def __init__(self, schema: TypeSchema):
        self.schema = schema

    @property
    def content_type(self) -> str:
        return self.schema.content_type

    @property
    def table(self) -> str:
        return self.schema.table

    def project(self, envelope: ContentEnvelope, object_key: str) -> IndexRecord:
        if envelope.type != self.schema.content_type:
            raise RoutingError(
                f"Projector for {self.schema.content_type!r} cannot handle {envelope.type!r}",
                content_type=envelope.type,
            )
        if not envelope.id:
            raise EnvelopeValidationError("id", "string")

        data = envelope.data
        mandatory = [spec for spec in self.schema.fields if spec.required]
        extras = [spec for spec in self.schema.fields if not spec.required]

        row: dict[str, Any] = {"id": envelope.id}
        for spec in mandatory:
            row[spec.column] = spec.extract(data)
        row["r2_key"] = object_key
        for spec in extras:
            row[spec.column] = spec.extract(data)

        return IndexRecord(table=self.schema.table, row=row)


# =============================================================================
# Registry
# =============================================================================

SCHEMAS: tuple[TypeSchema, ...] = (
    TypeSchema(
        "chatter",
        "chatter",
        (
            required("date_posted", "timestamp"),
            required("year", "integer"),
            required("month", "string"),
            required("slug", "string"),
            optional("publish", "boolean", True),
        ),
    ),
    TypeSchema(
        "checkins",
        "checkins",
        (
            required("venue_id", "string"),
            required("latitude", "number"),
            required("longitude", "number"),
            required("datetime", "timestamp"),
            required("year", "integer"),
            required("month", "string"),
            required("slug", "string"),
            optional("publish", "boolean", True),
        ),
    ),
    TypeSchema(
        "films",
        "films",
        (
            required("year_watched", "integer"),
            required("date_watched", "timestamp"),
            required("month", "string"),
            required("slug", "string"),
            optional("rewatch", "boolean", False),
            optional("publish", "boolean", True),
            optional("tmdb_id", "string"),
            optional("letterboxd_id", "string"),
        ),
    ),
    TypeSchema(
        "quotes",
        "quotes",
        (
            required("author", "string"),
            required("date_added", "timestamp"),
            required("year", "integer"),
            required("month", "string"),
            required("slug", "string"),
            optional("publish", "boolean", True),
        ),
    ),
    TypeSchema(
        "shakespeare",
        "shakespeare",
        (
            required("work_id", "string"),
            required("act", "integer"),
            required("scene", "integer"),
            required("character_id", "string"),
            required("word_count", "integer"),
            required("timestamp", "timestamp"),
        ),
    ),
    TypeSchema(
        "topten",
        "topten",
        (
            required("show", "string"),
            required("date", "string"),
            required("timestamp", "timestamp"),
            required("year", "integer"),
            required("month", "string"),
            required("slug", "string"),
        ),
    ),
)

PROJECTORS: dict[str, TypeProjector] = {s.content_type: TypeProjector(s) for s in SCHEMAS}


def get_projector(content_type: str) -> TypeProjector:
    """
    Look up the projector for a discriminator.

    Raises:
        RoutingError: no projector is registered for `content_type`.
    """
    projector = PROJECTORS.get(content_type)
    if projector is None:
        raise RoutingError(f"Unknown content type: {content_type}", content_type=content_type)
    return projector
