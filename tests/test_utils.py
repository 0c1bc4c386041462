import pytest

from app.errors import ErrorKind, kind_for_status
from app.utils import (
    GENERIC_ERROR_MESSAGE,
    describe_validation_errors,
    extract_error_message,
    normalize_kind,
    parse_item_id,
)


def test_normalize_kind_maps_tv_to_series():
    assert normalize_kind("tv") == "series"
    assert normalize_kind(" Movie ") == "movie"
    assert normalize_kind("person") is None
    assert normalize_kind(None) is None


def test_parse_item_id_accepts_decimal_strings():
    assert parse_item_id("42") == 42
    assert parse_item_id(" 7 ") == 7


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        (None, "id parameter is required"),
        ("", "id parameter is required"),
        ("abc", "Invalid id parameter"),
        ("1.5", "Invalid id parameter"),
    ],
)
def test_parse_item_id_rejects_missing_or_malformed(raw, message):
    with pytest.raises(ValueError, match=message):
        parse_item_id(raw)


def test_extract_error_message_prefers_error_field():
    assert extract_error_message({"error": "Nope", "message": "Other"}) == "Nope"
    assert extract_error_message({"detail": "Detailed"}) == "Detailed"


def test_extract_error_message_falls_back():
    assert extract_error_message(None, fallback="Not Found") == "Not Found"
    assert extract_error_message({"error": "  "}) == GENERIC_ERROR_MESSAGE


def test_describe_validation_errors_lists_missing_fields():
    errors = [
        {"type": "missing", "loc": ("body", "catalogId"), "msg": "Field required"},
        {"type": "missing", "loc": ("body", "title"), "msg": "Field required"},
        {"type": "missing", "loc": ("body", "kind"), "msg": "Field required"},
    ]

    assert describe_validation_errors(errors) == "catalogId, title, and kind are required"


def test_describe_validation_errors_strips_value_error_prefix():
    errors = [
        {
            "type": "value_error",
            "loc": ("body", "kind"),
            "msg": "Value error, kind must be 'movie' or 'series'",
        }
    ]

    assert describe_validation_errors(errors) == "kind: kind must be 'movie' or 'series'"


def test_kind_for_status_prefers_reported_kind():
    assert kind_for_status(409) is ErrorKind.CONFLICT
    assert kind_for_status(500) is ErrorKind.UNKNOWN
    assert kind_for_status(500, "catalog_unavailable") is ErrorKind.CATALOG_UNAVAILABLE
    assert kind_for_status(404, "bogus") is ErrorKind.NOT_FOUND
