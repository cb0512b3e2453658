# ==============================================
# Tests for TypeDetector
# ==============================================

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from recordflow.normalization.type_detector import (
    TypeDetector, NULL, BOOLEAN, INTEGER, NUMBER, STRING, DATE, DATE_TIME, OBJECT, ARRAY,
)


class TestDiscover:

    @pytest.mark.parametrize("value,expected", [
        (None, NULL),
        ("", NULL),
        ("null", NULL),
        (True, BOOLEAN),
        ("yes", BOOLEAN),
        ("FALSE", BOOLEAN),
        (7, INTEGER),
        ("42", INTEGER),
        ("1", INTEGER),
        ("0", INTEGER),
        ("-3", INTEGER),
        (2.5, NUMBER),
        ("3.14", NUMBER),
        ("1e3", NUMBER),
        (Decimal("1.50"), NUMBER),
        (Decimal("10"), INTEGER),
        ("2024-01-31", DATE),
        ("2024/01/31", DATE),
        ("2024-01-31T10:00:00Z", DATE_TIME),
        ("2024-01-31 10:00:00", DATE_TIME),
        (date(2024, 1, 31), DATE),
        (datetime(2024, 1, 31, 10, 0), DATE_TIME),
        ({"a": 1}, OBJECT),
        ([1, 2], ARRAY),
        ("hello", STRING),
    ])
    def test_discover(self, value, expected):
        assert TypeDetector.discover(value) == expected

    def test_leading_zero_stays_string(self):
        """Zip codes and ids keep their zeros."""
        assert TypeDetector.discover("0123") == STRING


class TestConvert:

    def test_integer_from_string(self):
        assert TypeDetector.convert("42", INTEGER) == 42

    def test_boolean_from_string(self):
        assert TypeDetector.convert("Yes", BOOLEAN) is True
        assert TypeDetector.convert("no", BOOLEAN) is False

    def test_datetime_keeps_timezone(self):
        value = TypeDetector.convert("2024-01-31T10:00:00Z", DATE_TIME)
        assert value == datetime(2024, 1, 31, 10, 0, tzinfo=timezone.utc)

    def test_unconvertible_value_is_returned_unchanged(self):
        assert TypeDetector.convert("abc", INTEGER) == "abc"

    def test_discovers_type_when_omitted(self):
        assert TypeDetector.convert("2024-01-31") == date(2024, 1, 31)


class TestPrecisionAndScale:

    @pytest.mark.parametrize("value,expected", [
        ("101", (3, 0)),
        (9007199254740991, (16, 0)),
        (3.25, (3, 2)),
        ("0.05", (3, 2)),
        ("3.10", (3, 2)),
        ("abc", (0, 0)),
    ])
    def test_precision_and_scale(self, value, expected):
        assert TypeDetector.precision_and_scale(value) == expected
