# ==============================================
# ValueTypeStatistics
# ==============================================
#
# PURPOSE:
#   Everything observed for ONE value type of ONE property, e.g. the
#   "integer" values of property "age". A property that was seen both as
#   a string and as an integer carries two of these.
#
# WHAT IS TRACKED (by value type):
#   - every type   → record_count, content_labels
#   - string       → string_min_length / string_max_length
#   - integer /
#     number       → number_min_value / number_max_value,
#                    number_max_precision / number_max_scale
#   - boolean      → boolean_true_count / boolean_false_count
#   - date /
#     date-time    → date_min_value / date_max_value
#   - scalar types → string_options: histogram of distinct values
#
# HISTOGRAM LIMITS:
#   string_options holds at most MAX_STRING_OPTIONS distinct values.
#   It is switched off for good (set to None) the first time it would
#   exceed that, or when a value longer than MAX_STRING_OPTION_LENGTH
#   characters is seen. Once None it never comes back.
#
# WIDENING:
#   relabel("number") turns integer statistics into number statistics;
#   numeric fields carry over unchanged.
#
# ==============================================

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from recordflow.normalization.type_detector import (
    TypeDetector, STRING, INTEGER, NUMBER, BOOLEAN, DATE, DATE_TIME, OBJECT, ARRAY, NULL,
)
from recordflow.content_detector.content_label import ContentLabel


MAX_STRING_OPTIONS = 50
MAX_STRING_OPTION_LENGTH = 50

_NO_HISTOGRAM_TYPES = {OBJECT, ARRAY, NULL}


def _date_sort_key(value: date) -> datetime:
    # Aware and naive datetimes do not compare; order everything as naive UTC
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


@dataclass
class ValueTypeStatistics:
    """Statistics for one value type of one property."""

    value_type: str
    record_count: int = 0

    string_min_length: Optional[int] = None
    string_max_length: Optional[int] = None
    string_options: Optional[Dict[str, int]] = field(default_factory=dict)

    number_min_value: Optional[float] = None
    number_max_value: Optional[float] = None
    number_max_precision: Optional[int] = None
    number_max_scale: Optional[int] = None

    boolean_true_count: Optional[int] = None
    boolean_false_count: Optional[int] = None

    date_min_value: Optional[date] = None
    date_max_value: Optional[date] = None

    content_labels: List[ContentLabel] = field(default_factory=list)

    # ======================================
    # Update logic
    # ======================================
    def update(self, value: Any, raw_value: Any = None) -> None:
        """
        Record one observed value.

        Args:
            value: The converted value (TypeDetector.convert output)
            raw_value: The value as it arrived, used for decimal precision
                so "3.10" counts two fraction digits
        """
        self.record_count += 1

        if self.value_type == STRING:
            length = len(value)
            if self.string_min_length is None or length < self.string_min_length:
                self.string_min_length = length
            if self.string_max_length is None or length > self.string_max_length:
                self.string_max_length = length

        elif self.value_type in (INTEGER, NUMBER):
            self._update_number(value, raw_value)

        elif self.value_type == BOOLEAN:
            if self.boolean_true_count is None:
                self.boolean_true_count = 0
                self.boolean_false_count = 0
            if value:
                self.boolean_true_count += 1
            else:
                self.boolean_false_count += 1

        elif self.value_type in (DATE, DATE_TIME) and isinstance(value, date):
            if self.date_min_value is None or _date_sort_key(value) < _date_sort_key(self.date_min_value):
                self.date_min_value = value
            if self.date_max_value is None or _date_sort_key(value) > _date_sort_key(self.date_max_value):
                self.date_max_value = value

        if self.value_type not in _NO_HISTOGRAM_TYPES:
            self._update_string_options(value)

    def _update_number(self, value: Any, raw_value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return
        if self.number_min_value is None or value < self.number_min_value:
            self.number_min_value = value
        if self.number_max_value is None or value > self.number_max_value:
            self.number_max_value = value

        source = value
        if isinstance(raw_value, (str, int, float, Decimal)) and not isinstance(raw_value, bool):
            source = raw_value
        precision, scale = TypeDetector.precision_and_scale(source)
        if self.number_max_precision is None or precision > self.number_max_precision:
            self.number_max_precision = precision
        if self.number_max_scale is None or scale > self.number_max_scale:
            self.number_max_scale = scale

    def _update_string_options(self, value: Any) -> None:
        if self.string_options is None:
            return

        if isinstance(value, (date, datetime)):
            key = value.isoformat()
        elif isinstance(value, bool):
            key = "true" if value else "false"
        else:
            key = str(value)

        if len(key) > MAX_STRING_OPTION_LENGTH:
            self.string_options = None
            return

        self.string_options[key] = self.string_options.get(key, 0) + 1
        if len(self.string_options) > MAX_STRING_OPTIONS:
            self.string_options = None

    @property
    def string_options_disabled(self) -> bool:
        return self.string_options is None

    def relabel(self, value_type: str) -> None:
        self.value_type = value_type

    # ======================================
    # Serialization
    # ======================================
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "value_type": self.value_type,
            "record_count": self.record_count,
            "string_options": dict(self.string_options) if self.string_options is not None else None,
            "content_labels": [label.to_dict() for label in self.content_labels],
        }
        optional = {
            "string_min_length": self.string_min_length,
            "string_max_length": self.string_max_length,
            "number_min_value": self.number_min_value,
            "number_max_value": self.number_max_value,
            "number_max_precision": self.number_max_precision,
            "number_max_scale": self.number_max_scale,
            "boolean_true_count": self.boolean_true_count,
            "boolean_false_count": self.boolean_false_count,
            "date_min_value": self.date_min_value.isoformat() if self.date_min_value else None,
            "date_max_value": self.date_max_value.isoformat() if self.date_max_value else None,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValueTypeStatistics":
        stats = cls(value_type=data["value_type"])
        stats.record_count = data.get("record_count", 0)
        stats.string_min_length = data.get("string_min_length")
        stats.string_max_length = data.get("string_max_length")
        stats.string_options = data.get("string_options", {})
        stats.number_min_value = data.get("number_min_value")
        stats.number_max_value = data.get("number_max_value")
        stats.number_max_precision = data.get("number_max_precision")
        stats.number_max_scale = data.get("number_max_scale")
        stats.boolean_true_count = data.get("boolean_true_count")
        stats.boolean_false_count = data.get("boolean_false_count")
        stats.date_min_value = _parse_date_value(stats.value_type, data.get("date_min_value"))
        stats.date_max_value = _parse_date_value(stats.value_type, data.get("date_max_value"))
        stats.content_labels = [ContentLabel.from_dict(label) for label in data.get("content_labels", [])]
        return stats


def _parse_date_value(value_type: str, raw: Optional[str]) -> Optional[date]:
    if raw is None:
        return None
    if value_type == DATE:
        return date.fromisoformat(raw[:10])
    return datetime.fromisoformat(raw)
