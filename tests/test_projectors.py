"""
tests/test_projectors.py

Type projectors: routing, required-field validation, optional defaults and
timestamp normalization.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from archivist.core.errors import EnvelopeValidationError, RoutingError
from archivist.ingest.projectors import PROJECTORS, get_projector, parse_timestamp
from archivist.models.envelope import ContentEnvelope

KEY = "sha256_test.json"


def _envelope(content_type: str, data: dict[str, Any]) -> ContentEnvelope:
    return ContentEnvelope.wrap(content_type, data)


class TestRegistry:
    def test_registered_types(self) -> None:
        assert set(PROJECTORS) == {"chatter", "checkins", "films", "quotes", "shakespeare", "topten"}

    def test_unknown_type_is_routing_error(self) -> None:
        with pytest.raises(RoutingError) as exc_info:
            get_projector("recipes")
        assert exc_info.value.content_type == "recipes"

    def test_only_canonical_shakespeare_spelling(self) -> None:
        with pytest.raises(RoutingError):
            get_projector("shakespert")

    def test_quotes_never_reach_chatter_projector(self, quote_data: dict) -> None:
        with pytest.raises(RoutingError):
            get_projector("chatter").project(_envelope("quotes", quote_data), KEY)


class TestQuotesProjection:
    def test_projects_narrow_record(self, quote_data: dict) -> None:
        envelope = _envelope("quotes", {**quote_data, "text": "Luck is preparation..."})

        record = get_projector("quotes").project(envelope, KEY)

        assert record.table == "quotes"
        assert record.row == {
            "id": envelope.id,
            "author": "Seneca",
            "date_added": datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc),
            "year": 2024,
            "month": "01",
            "slug": "seneca-1",
            "publish": True,
            "r2_key": KEY,
        }

    def test_stored_id_is_used_as_is(self) -> None:
        envelope = ContentEnvelope.parse(
            {
                "type": "quotes",
                "id": "sha256:abc",
                "data": {
                    "author": "Seneca",
                    "date_added": "2020-01-01",
                    "year": 2020,
                    "month": "2020-01",
                    "slug": "seneca-1",
                    "text": "...",
                },
            }
        )

        row = get_projector("quotes").project(envelope, "sha256_abc.json").row

        assert row["id"] == "sha256:abc"
        assert row["date_added"] == datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert row["month"] == "2020-01"
        assert row["publish"] is True
        assert "text" not in row

    def test_missing_slug_names_the_field(self, quote_data: dict) -> None:
        del quote_data["slug"]

        with pytest.raises(EnvelopeValidationError) as exc_info:
            get_projector("quotes").project(_envelope("quotes", quote_data), KEY)

        assert exc_info.value.field == "slug"
        assert exc_info.value.status_code == 422

    def test_first_failing_field_in_declared_order(self) -> None:
        with pytest.raises(EnvelopeValidationError) as exc_info:
            get_projector("quotes").project(_envelope("quotes", {"year": "2024"}), KEY)
        assert exc_info.value.field == "author"

    def test_wrong_type_year(self, quote_data: dict) -> None:
        quote_data["year"] = "2024"
        with pytest.raises(EnvelopeValidationError, match="year"):
            get_projector("quotes").project(_envelope("quotes", quote_data), KEY)

    def test_explicit_publish_false_kept(self, quote_data: dict) -> None:
        quote_data["publish"] = False
        record = get_projector("quotes").project(_envelope("quotes", quote_data), KEY)
        assert record.row["publish"] is False

    def test_mistyped_optional_falls_back_to_default(self, quote_data: dict) -> None:
        quote_data["publish"] = "no"
        record = get_projector("quotes").project(_envelope("quotes", quote_data), KEY)
        assert record.row["publish"] is True

    def test_envelope_without_id_rejected(self, quote_data: dict) -> None:
        envelope = ContentEnvelope(type="quotes", id=None, data=quote_data)
        with pytest.raises(EnvelopeValidationError) as exc_info:
            get_projector("quotes").project(envelope, KEY)
        assert exc_info.value.field == "id"


class TestOtherTypes:
    def test_films_defaults(self) -> None:
        data = {"year_watched": 2023, "date_watched": "2023-06-01", "month": "06", "slug": "heat"}

        row = get_projector("films").project(_envelope("films", data), KEY).row

        assert row["rewatch"] is False
        assert row["publish"] is True
        assert row["tmdb_id"] is None
        assert row["letterboxd_id"] is None
        assert row["date_watched"] == datetime(2023, 6, 1, tzinfo=timezone.utc)

    def test_checkins_numbers(self) -> None:
        data = {
            "venue_id": "v1",
            "latitude": 51.5,
            "longitude": -0.12,
            "datetime": 1704448800,
            "year": 2024,
            "month": "01",
            "slug": "pub-1",
        }

        row = get_projector("checkins").project(_envelope("checkins", data), KEY).row

        assert row["latitude"] == 51.5
        assert row["longitude"] == -0.12
        assert row["datetime"] == datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)

    def test_boolean_rejected_as_number(self) -> None:
        data = {
            "venue_id": "v1",
            "latitude": True,
            "longitude": 0,
            "datetime": "2024-01-05",
            "year": 2024,
            "month": "01",
            "slug": "pub-1",
        }
        with pytest.raises(EnvelopeValidationError) as exc_info:
            get_projector("checkins").project(_envelope("checkins", data), KEY)
        assert exc_info.value.field == "latitude"

    def test_shakespeare_has_no_slug(self) -> None:
        data = {
            "work_id": "hamlet",
            "act": 3,
            "scene": 1,
            "character_id": "hamlet",
            "word_count": 260,
            "timestamp": "1600-01-01T00:00:00Z",
        }

        row = get_projector("shakespeare").project(_envelope("shakespeare", data), KEY).row

        assert "slug" not in row
        assert row["act"] == 3
        assert row["r2_key"] == KEY

    def test_topten_requires_show(self) -> None:
        data = {"date": "2024-01-05", "timestamp": "2024-01-05", "year": 2024, "month": "01", "slug": "t"}
        with pytest.raises(EnvelopeValidationError) as exc_info:
            get_projector("topten").project(_envelope("topten", data), KEY)
        assert exc_info.value.field == "show"


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            "2024-01-05T10:00:00Z",
            "2024-01-05T10:00:00+00:00",
            "2024-01-05T11:00:00+01:00",
            "2024-01-05T10:00:00",
            1704448800,
            1704448800.0,
        ],
    )
    def test_normalizes_to_utc(self, value: Any) -> None:
        assert parse_timestamp(value) == datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)

    def test_date_only(self) -> None:
        assert parse_timestamp("2024-01-05") == datetime(2024, 1, 5, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "yesterday", True, None, [2024]])
    def test_rejects_invalid(self, value: Any) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(value)
