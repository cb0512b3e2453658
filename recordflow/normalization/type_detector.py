import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple


# Value types, in the vocabulary used by schemas and sink configuration
NULL = "null"
BOOLEAN = "boolean"
INTEGER = "integer"
NUMBER = "number"
STRING = "string"
DATE = "date"
DATE_TIME = "date-time"
OBJECT = "object"
ARRAY = "array"

VALUE_TYPES = (NULL, BOOLEAN, INTEGER, NUMBER, STRING, DATE, DATE_TIME, OBJECT, ARRAY)


class TypeDetector:
    NULL_VARIANTS = {"null", ""}
    BOOL_TRUE_VARIANTS = {"true", "yes"}
    BOOL_FALSE_VARIANTS = {"false", "no"}

    # No superfluous leading zeros: "0123" stays a string (zip codes, ids)
    NUMBER_PATTERN = re.compile(r'^-?(0|[1-9]\d*)(\.\d+)?([eE][+-]?\d+)?$')
    INTEGER_PATTERN = re.compile(r'^-?(0|[1-9]\d*)$')

    DATE_FORMATS = [
        "%Y-%m-%d",
        "%Y/%m/%d",
    ]

    DATETIME_FORMATS = [
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M:%S.%f",
        "%Y/%m/%d %H:%M:%S",
    ]

    @classmethod
    def discover(cls, value: Any) -> str:
        """
        Classify a value into one of VALUE_TYPES.

        Python values map directly; strings are classified by content, so
        "42" is an integer and "2024-01-31" a date.
        """
        if value is None:
            return NULL

        if isinstance(value, bool):
            return BOOLEAN

        if isinstance(value, int):
            return INTEGER

        if isinstance(value, float):
            return NUMBER

        if isinstance(value, Decimal):
            return INTEGER if value.as_tuple().exponent >= 0 else NUMBER

        if isinstance(value, datetime):
            return DATE_TIME

        if isinstance(value, date):
            return DATE

        if isinstance(value, (list, tuple)):
            return ARRAY

        if isinstance(value, dict):
            return OBJECT

        if isinstance(value, str):
            return cls._discover_string(value)

        return STRING

    @classmethod
    def _discover_string(cls, value: str) -> str:
        stripped = value.strip()
        lowered = stripped.lower()

        if lowered in cls.NULL_VARIANTS:
            return NULL

        if lowered in cls.BOOL_TRUE_VARIANTS or lowered in cls.BOOL_FALSE_VARIANTS:
            return BOOLEAN

        if cls.NUMBER_PATTERN.match(stripped):
            return INTEGER if cls.INTEGER_PATTERN.match(stripped) else NUMBER

        if cls._parse_date(stripped) is not None:
            return DATE

        if cls._parse_datetime(stripped) is not None:
            return DATE_TIME

        return STRING

    @classmethod
    def convert(cls, value: Any, value_type: Optional[str] = None) -> Any:
        """
        Convert a raw value to the Python value for its type.

        Args:
            value: Raw value (often a string from a text source)
            value_type: Target type; discovered when omitted

        Returns:
            The converted value. Values that cannot be converted are
            returned unchanged.
        """
        if value_type is None:
            value_type = cls.discover(value)

        if value_type == NULL:
            return None

        if value_type in (OBJECT, ARRAY):
            return value

        if value_type == STRING:
            return value if isinstance(value, str) else str(value)

        if isinstance(value, str):
            value = value.strip()

        try:
            if value_type == BOOLEAN:
                if isinstance(value, str):
                    return value.lower() in cls.BOOL_TRUE_VARIANTS
                return bool(value)

            if value_type == INTEGER:
                return int(value)

            if value_type == NUMBER:
                return float(value)
        except (ValueError, TypeError):
            return value

        if value_type == DATE:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            parsed = cls._parse_date(str(value))
            return parsed if parsed is not None else value

        if value_type == DATE_TIME:
            if isinstance(value, datetime):
                return value
            parsed = cls._parse_datetime(str(value))
            return parsed if parsed is not None else value

        return value

    @classmethod
    def precision_and_scale(cls, value: Any) -> Tuple[int, int]:
        """
        Decimal precision (significant digits) and scale (fraction digits).

        "101" → (3, 0); 3.25 → (3, 2); 0.05 → (3, 2)
        """
        try:
            if isinstance(value, Decimal):
                number = value
            elif isinstance(value, str):
                number = Decimal(value.strip())
            else:
                number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return 0, 0

        if not number.is_finite():
            return 0, 0

        sign, digits, exponent = number.as_tuple()
        if exponent >= 0:
            return len(digits) + exponent, 0

        scale = -exponent
        integer_digits = max(len(digits) - scale, 1)
        return integer_digits + scale, scale

    @classmethod
    def _parse_date(cls, value: str) -> Optional[date]:
        for fmt in cls.DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
        return None

    @classmethod
    def _parse_datetime(cls, value: str) -> Optional[datetime]:
        if "T" in value or " " in value:
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                pass
        for fmt in cls.DATETIME_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        return None
