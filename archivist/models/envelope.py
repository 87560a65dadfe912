"""
Archivist - Content Envelope

Every stored document is a `{type, id, data}` envelope:

- `type` is a free-form discriminator. The envelope layer never checks it
  against a list of known types; routing is the projector registry's job.
- `id` is content-derived: "sha256:" + hex digest of the canonical JSON
  serialization of `data`. Identical data always yields the same id, which is
  the deduplication key across the archive.
- `data` is opaque here; its shape belongs to the projector for `type`.

Usage:
    from archivist.models.envelope import ContentEnvelope

    envelope = ContentEnvelope.wrap("quotes", {"author": "Seneca", ...})
    envelope.id          # "sha256:..."
    envelope.object_key  # "sha256_....json"

    parsed = ContentEnvelope.parse(raw_bytes)
"""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from archivist.core.errors import InvalidEnvelopeError

DIGEST_ALGORITHM = "sha256"


# Integers beyond this are not exactly representable as IEEE doubles, so
# other clients see (and serialize) them as rounded floats.
MAX_SAFE_INTEGER = 2**53 - 1


def format_number(value: float) -> str:
    """
    Format a finite number the way ECMAScript Number-to-String does.

    Uses the shortest round-tripping digits (as repr does) but places the
    decimal point by the ECMAScript rules: plain notation for 1e-7 < |v| < 1e21,
    exponent form otherwise, with no zero padding and an explicit "+".

        1.0 -> "1"      1e21 -> "1e+21"      1e-7 -> "1e-7"      0.5 -> "0.5"
    """
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
    if value == 0:
        return "0"
    if value < 0:
        return "-" + format_number(-value)

    mantissa, _, exponent = repr(value).partition("e")
    whole, _, fraction = mantissa.partition(".")
    raw = whole + fraction
    digits = raw.lstrip("0")
    point = len(whole) + int(exponent or 0) - (len(raw) - len(digits))
    digits = digits.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        return digits + "0" * (point - k)
    if 0 < point <= 21:
        return f"{digits[:point]}.{digits[point:]}"
    if -6 < point <= 0:
        return "0." + "0" * -point + digits

    e = point - 1
    sign = "+" if e >= 0 else "-"
    head = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{head}e{sign}{abs(e)}"


def _write(value: Any, parts: list[str]) -> None:
    if value is None or isinstance(value, bool):
        parts.append(json.dumps(value))
    elif isinstance(value, int):
        parts.append(str(value) if abs(value) <= MAX_SAFE_INTEGER else format_number(float(value)))
    elif isinstance(value, float):
        parts.append(format_number(value))
    elif isinstance(value, str):
        parts.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, dict):
        items = sorted(((str(k), v) for k, v in value.items()), key=_key_order)
        parts.append("{")
        for i, (key, item) in enumerate(items):
            if i:
                parts.append(",")
            parts.append(json.dumps(key, ensure_ascii=False))
            parts.append(":")
            _write(item, parts)
        parts.append("}")
    elif isinstance(value, (list, tuple)):
        parts.append("[")
        for i, item in enumerate(value):
            if i:
                parts.append(",")
            _write(item, parts)
        parts.append("]")
    else:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _key_order(item: tuple[str, Any]) -> bytes:
    # JavaScript sorts strings by UTF-16 code unit
    return item[0].encode("utf-16-be", "surrogatepass")


def canonical_json(obj: Any) -> str:
    """
    Serialize to canonical JSON: keys sorted at every depth, no whitespace.

    Array order is preserved. Non-ASCII text is emitted as UTF-8 rather than
    escaped, and numbers are written the way JavaScript's JSON.stringify
    writes them, so the digest matches documents written by other clients.

    Raises:
        ValueError: NaN or infinity anywhere in `obj`.
    """
    parts: list[str] = []
    _write(obj, parts)
    return "".join(parts)


def content_digest(data: dict[str, Any]) -> str:
    """Hex SHA-256 digest of the canonical serialization of `data`."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def compute_content_id(data: dict[str, Any]) -> str:
    """
    Compute the content-addressable id for an envelope payload.

    Returns:
        Id string in format "sha256:<hex>"
    """
    return f"{DIGEST_ALGORITHM}:{content_digest(data)}"


def object_key_for(content_id: str) -> str:
    """Object-store key for a content id: "sha256:abc" -> "sha256_abc.json"."""
    algorithm, _, digest = content_id.partition(":")
    return f"{algorithm}_{digest}.json"


class ContentEnvelope(BaseModel):
    """Wire and storage format shared by every archived document."""

    model_config = {"extra": "ignore"}

    type: str = Field(..., min_length=1)
    id: str | None = Field(default=None)
    data: dict[str, Any]

    @classmethod
    def wrap(cls, content_type: str, data: dict[str, Any]) -> "ContentEnvelope":
        """Build a new envelope, deriving its id from `data`."""
        return cls(type=content_type, id=compute_content_id(data), data=data)

    @classmethod
    def parse(cls, raw: bytes | str | dict[str, Any]) -> "ContentEnvelope":
        """
        Parse a stored document into an envelope.

        A top-level `id` wins; a string `data.id` is accepted for documents
        written before ids were lifted into the envelope.

        Raises:
            InvalidEnvelopeError: not JSON, not an object, or missing
                a string `type` / object `data`.
        """
        if isinstance(raw, (bytes, str)):
            try:
                raw = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidEnvelopeError(f"Invalid JSON syntax: {e}") from e

        if not isinstance(raw, dict):
            raise InvalidEnvelopeError("JSON must be an object")

        if not isinstance(raw.get("type"), str) or not raw["type"]:
            raise InvalidEnvelopeError('Missing or invalid "type" field in wrapped JSON')
        if not isinstance(raw.get("data"), dict):
            raise InvalidEnvelopeError('Missing or invalid "data" field in wrapped JSON')

        try:
            envelope = cls.model_validate(raw)
        except ValidationError as e:
            raise InvalidEnvelopeError(f"Envelope failed validation: {e}") from e

        if not envelope.id:
            fallback = envelope.data.get("id")
            envelope.id = fallback if isinstance(fallback, str) and fallback else None

        return envelope

    @property
    def object_key(self) -> str | None:
        return object_key_for(self.id) if self.id else None

    def to_json(self) -> str:
        """Serialize for storage, keeping the {type, id, data} key order."""
        return json.dumps(
            {"type": self.type, "id": self.id, "data": self.data},
            ensure_ascii=False,
        )
