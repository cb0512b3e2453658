"""JSON helpers for values produced by TypeDetector.convert (dates, decimals)."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any


def json_default(obj: Any) -> Any:
    """`default=` hook for json.dumps."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (set, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_json_safe(value: Any) -> Any:
    """Recursively replace dates/decimals so the value survives json.dump."""
    if isinstance(value, dict):
        return {key: to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
