"""
tests/test_messages.py

Queue message classification: document vs. continuation vs. invalid.
"""

from __future__ import annotations

import pytest

from archivist.core.errors import InvalidMessageError
from archivist.models.messages import ContinuationMessage, DocumentMessage, parse_message


class TestParseMessage:
    def test_document_message(self) -> None:
        message = parse_message({"objectKey": "sha256_ab.json"})

        assert isinstance(message, DocumentMessage)
        assert message.object_key == "sha256_ab.json"

    def test_continuation_message(self) -> None:
        message = parse_message({"kind": "pagination", "cursor": "tok"})

        assert isinstance(message, ContinuationMessage)
        assert message.cursor == "tok"
        assert message.page is None
        assert message.page_number == 2

    def test_continuation_with_page(self) -> None:
        message = parse_message({"kind": "pagination", "cursor": "tok", "page": 7})
        assert message.page_number == 7

    @pytest.mark.parametrize(
        "body",
        [
            None,
            "sha256_ab.json",
            [],
            {},
            {"key": "sha256_ab.json"},
            {"objectKey": ""},
            {"objectKey": 12},
            {"kind": "other", "cursor": "tok"},
            {"kind": "pagination"},
            {"kind": "pagination", "cursor": ""},
            {"kind": "pagination", "cursor": "tok", "page": 0},
            {"kind": "pagination", "cursor": "tok", "page": "3"},
            {"objectKey": "a.json", "extra": 1},
        ],
    )
    def test_invalid_bodies(self, body: object) -> None:
        with pytest.raises(InvalidMessageError):
            parse_message(body)

    def test_mixed_shapes_rejected(self) -> None:
        with pytest.raises(InvalidMessageError, match="mixes"):
            parse_message({"objectKey": "a.json", "kind": "pagination", "cursor": "tok"})


class TestWireBodies:
    def test_document_body(self) -> None:
        assert DocumentMessage(objectKey="a.json").to_body() == {"objectKey": "a.json"}

    def test_continuation_body_omits_unset_page(self) -> None:
        assert ContinuationMessage(cursor="tok").to_body() == {"kind": "pagination", "cursor": "tok"}

    def test_continuation_body_with_page(self) -> None:
        body = ContinuationMessage(cursor="tok", page=3).to_body()
        assert body == {"kind": "pagination", "cursor": "tok", "page": 3}
