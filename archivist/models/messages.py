"""
Archivist - Queue Messages

The ingest queue carries exactly two message shapes:

    {"objectKey": "sha256_ab12.json"}                  document message
    {"kind": "pagination", "cursor": "opaque-token"}   continuation message

A continuation may also carry `"page"`, the 1-based index of the page its
cursor leads to; it feeds the runaway-pagination guard and is omitted from
the wire body when unset.

Anything else is an InvalidMessageError. Classification is by shape, so the
pagination and enqueue layers never need to know about content types.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError

from archivist.core.errors import InvalidMessageError

PAGINATION_KIND = "pagination"


class DocumentMessage(BaseModel):
    """Pointer to one stored envelope to ingest."""

    model_config = {"extra": "forbid", "frozen": True, "populate_by_name": True}

    object_key: str = Field(..., alias="objectKey", min_length=1)

    def to_body(self) -> dict[str, Any]:
        return {"objectKey": self.object_key}


class ContinuationMessage(BaseModel):
    """Instruction to list (and enqueue) the page behind `cursor`."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["pagination"] = PAGINATION_KIND
    cursor: str = Field(..., min_length=1)
    page: int | None = Field(default=None, ge=1, strict=True)

    @property
    def page_number(self) -> int:
        """Page index this cursor leads to; the first continuation is page 2."""
        return self.page if self.page is not None else 2

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"kind": self.kind, "cursor": self.cursor}
        if self.page is not None:
            body["page"] = self.page
        return body


QueueMessage = Union[DocumentMessage, ContinuationMessage]


def parse_message(body: Any) -> QueueMessage:
    """
    Classify a raw queue body into one of the two message variants.

    Raises:
        InvalidMessageError: body is not a dict, matches neither shape,
            or mixes fields of both.
    """
    if not isinstance(body, dict):
        raise InvalidMessageError(f"Message body must be an object, got {type(body).__name__}")

    has_kind = "kind" in body
    has_key = "objectKey" in body

    if has_kind and has_key:
        raise InvalidMessageError("Message mixes document and continuation fields")

    try:
        if has_kind:
            return ContinuationMessage.model_validate(body)
        if has_key:
            return DocumentMessage.model_validate(body)
    except ValidationError as e:
        raise InvalidMessageError(f"Malformed queue message: {e.errors()[0]['msg']}") from e

    raise InvalidMessageError("Message has neither objectKey nor a pagination kind")
