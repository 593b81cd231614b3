from datetime import date, datetime, timedelta, timezone

import pytest

from exdrf_tv.utils import (
    count_label,
    generate_id,
    get_property_value,
    has_property,
    humanize,
    is_empty_value,
    record_key,
    to_datetime,
    to_number,
    to_text,
)


class Owner:
    def __init__(self, name):
        self.name = name


class TestPropertyAccess:
    """Tests for reading values through property paths."""

    def test_top_level_key(self):
        assert get_property_value({"a": 1}, "a") == 1

    def test_nested_dict(self):
        assert get_property_value({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_attribute(self):
        record = {"owner": Owner("Ann")}
        assert get_property_value(record, "owner.name") == "Ann"

    def test_sequence_index(self):
        assert get_property_value({"tags": ["x", "y"]}, "tags.1") == "y"

    def test_missing_returns_default(self):
        assert get_property_value({"a": {}}, "a.b", "none") == "none"
        assert get_property_value(None, "a") is None

    def test_has_property(self):
        assert has_property({"a": None}, "a")
        assert not has_property({"a": 1}, "b")
        assert not has_property({"a": 1}, "a.b")


def test_to_text():
    assert to_text(None) == ""
    assert to_text(True) == "true"
    assert to_text(35.0) == "35"
    assert to_text(3.5) == "3.5"
    assert to_text([1, 2]) == "[1, 2]"
    assert to_text(date(2024, 1, 2)) == "2024-01-02"


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (True, 1.0),
        (5, 5.0),
        ("  7.5 ", 7.5),
        ("", None),
        ("abc", None),
        (float("nan"), None),
        (object(), None),
    ],
)
def test_to_number(value, expected):
    assert to_number(value) == expected


class TestToDatetime:
    """Tests for date coercion."""

    def test_date(self):
        assert to_datetime(date(2024, 3, 1)) == datetime(2024, 3, 1)

    def test_iso_string(self):
        assert to_datetime("2024-03-01T10:30:00") == datetime(
            2024, 3, 1, 10, 30
        )

    def test_zulu_string_is_naive_utc(self):
        assert to_datetime("2024-03-01T10:30:00Z") == datetime(
            2024, 3, 1, 10, 30
        )

    def test_aware_datetime(self):
        tz = timezone(timedelta(hours=2))
        value = datetime(2024, 3, 1, 12, 0, tzinfo=tz)
        assert to_datetime(value) == datetime(2024, 3, 1, 10, 0)

    def test_epoch_seconds(self):
        assert to_datetime(0) == datetime(1970, 1, 1)

    def test_invalid(self):
        assert to_datetime("not a date") is None
        assert to_datetime(True) is None
        assert to_datetime(None) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, True),
        ("", True),
        ([], True),
        ([None, None], True),
        ((None, ""), True),
        ("x", False),
        (0, False),
        (False, False),
        ([1, None], False),
        (["a"], False),
    ],
)
def test_is_empty_value(value, expected):
    assert is_empty_value(value) is expected


def test_record_key_is_string():
    assert record_key({"id": 1}) == "1"
    assert record_key({"id": "1"}) == "1"
    assert record_key({"id": 1.0}) == "1"
    assert record_key({"code": "A"}, "code") == "A"
    assert record_key({"id": 4}, "code") == "4"
    assert record_key({"name": "x"}) is None


def test_generate_id():
    first = generate_id("preset")
    second = generate_id("preset")
    assert first.startswith("preset-")
    assert first != second


def test_humanize():
    assert humanize("created_at") == "Created at"
    assert humanize("firstName") == "First name"
    assert humanize("owner.name") == "Name"


def test_count_label():
    assert count_label(1, "row") == "1 row"
    assert count_label(3, "row") == "3 rows"
