# ==============================================
# Deconfliction
# ==============================================
#
# PURPOSE:
#   Strongly typed sinks (SQL tables) need exactly one value type per
#   property. When inspection saw a property with several incompatible
#   types, the operator chooses a DeconflictOption for it; this module
#   finds the conflicts, lists the sensible options, rewrites the schema
#   and converts values while records stream.
#
# FLOW:
#   find_type_conflicts(schema)           → [TypeConflict, ...]
#   get_deconflict_choices(value_types)   → options worth offering
#   build_deconflict_rules(schema, answers)
#   update_schema_with_deconflict_options(schema, rules)
#   resolve_conflict(value, rule)         → converted value | SKIP_RECORD
#
# CAST TABLE:
#   An option CAST_TO_X is offered only when every conflicting type can
#   be converted to X without guessing:
#     CAST_TO_BOOLEAN ← boolean, integer, number      (non-zero → true)
#     CAST_TO_INTEGER ← integer, boolean, date, date-time (epoch millis)
#     CAST_TO_FLOAT   ← number, integer, boolean
#     CAST_TO_DATE    ← date, date-time, integer      (epoch millis)
#   CAST_TO_STRING, CAST_TO_NULL, SKIP and ALL are always offered.
#
#   CAST_TO_NULL and SKIP keep the property's most frequent type: values
#   of any other type become null (CAST_TO_NULL) or drop the whole
#   record (SKIP).
#
# ==============================================

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from recordflow.normalization.json_values import json_default
from recordflow.normalization.type_detector import (
    TypeDetector, NULL, BOOLEAN, INTEGER, NUMBER, STRING, DATE, DATE_TIME,
)
from .schema import PropertyDescriptor, SchemaDescriptor


class DeconflictOption(Enum):
    CAST_TO_BOOLEAN = "CAST_TO_BOOLEAN"
    CAST_TO_INTEGER = "CAST_TO_INTEGER"
    CAST_TO_FLOAT = "CAST_TO_FLOAT"
    CAST_TO_DATE = "CAST_TO_DATE"
    CAST_TO_STRING = "CAST_TO_STRING"
    CAST_TO_NULL = "CAST_TO_NULL"
    SKIP = "SKIP"
    ALL = "ALL"


OPTION_DESCRIPTIONS = {
    DeconflictOption.CAST_TO_BOOLEAN: "Cast values to boolean (non-zero numbers are true)",
    DeconflictOption.CAST_TO_INTEGER: "Cast values to integer (dates become epoch milliseconds)",
    DeconflictOption.CAST_TO_FLOAT: "Cast values to decimal numbers",
    DeconflictOption.CAST_TO_DATE: "Cast values to dates (integers are epoch milliseconds)",
    DeconflictOption.CAST_TO_STRING: "Cast all values to text",
    DeconflictOption.CAST_TO_NULL: "Keep the most common type, set other values to null",
    DeconflictOption.SKIP: "Keep the most common type, skip records with other types",
    DeconflictOption.ALL: "Keep all values as they are (the sink must accept mixed types)",
}

CAST_SOURCES = {
    DeconflictOption.CAST_TO_BOOLEAN: {BOOLEAN, INTEGER, NUMBER},
    DeconflictOption.CAST_TO_INTEGER: {INTEGER, BOOLEAN, DATE, DATE_TIME},
    DeconflictOption.CAST_TO_FLOAT: {NUMBER, INTEGER, BOOLEAN},
    DeconflictOption.CAST_TO_DATE: {DATE, DATE_TIME, INTEGER},
}

ALWAYS_OFFERED = [
    DeconflictOption.CAST_TO_STRING,
    DeconflictOption.CAST_TO_NULL,
    DeconflictOption.SKIP,
    DeconflictOption.ALL,
]

# Marker returned by resolve_conflict: drop the whole record
SKIP_RECORD = object()


@dataclass
class TypeConflict:
    """A property observed with more than one value type."""
    property_title: str
    value_types: List[str]
    choices: List[DeconflictOption] = field(default_factory=list)


@dataclass
class DeconflictRule:
    """The chosen resolution for one property."""
    property_title: str
    option: DeconflictOption
    keep_type: Optional[str] = None


def merge_value_formats(formats: List[str]) -> List[str]:
    """Fold date-time into date, then sort and de-duplicate."""
    merged = {DATE if value_type == DATE_TIME else value_type for value_type in formats}
    return sorted(merged)


def find_type_conflicts(schema: SchemaDescriptor) -> List[TypeConflict]:
    """
    Detect properties with conflicting value types.

    Args:
        schema: Inspected schema

    Returns:
        One TypeConflict per conflicting (non-hidden) property
    """
    conflicts = []
    for title, prop in schema.properties.items():
        if prop.hidden:
            continue
        value_types = [vt for vt in merge_value_formats(prop.value_types) if vt != NULL]
        if len(value_types) > 1:
            conflicts.append(TypeConflict(
                property_title=title,
                value_types=value_types,
                choices=get_deconflict_choices(value_types),
            ))
    return conflicts


def get_deconflict_choices(value_types: List[str]) -> List[DeconflictOption]:
    present = set(value_types) - {NULL}
    choices = [
        option for option, sources in CAST_SOURCES.items()
        if present and present <= sources
    ]
    return choices + ALWAYS_OFFERED


def most_common_type(prop: PropertyDescriptor) -> Optional[str]:
    candidates = {vt: stats for vt, stats in prop.types.items() if vt != NULL}
    if not candidates:
        return None
    return max(candidates, key=lambda vt: candidates[vt].record_count)


def build_deconflict_rules(
    schema: SchemaDescriptor,
    options: Dict[str, Any],
) -> Dict[str, DeconflictRule]:
    """
    Turn operator answers (property title -> option or option value)
    into rules for the properties of `schema`.
    """
    rules = {}
    for title, option in options.items():
        prop = schema.properties.get(title)
        if prop is None:
            continue
        option = DeconflictOption(option.value if isinstance(option, DeconflictOption) else option)
        rules[title] = DeconflictRule(
            property_title=title,
            option=option,
            keep_type=most_common_type(prop),
        )
    return rules


def update_schema_with_deconflict_options(
    schema: SchemaDescriptor,
    rules: Dict[str, DeconflictRule],
) -> None:
    """Rewrite the format of every deconflicted property to its single type."""
    for title, rule in rules.items():
        prop = schema.properties.get(title)
        if prop is None:
            continue
        target = _target_format(prop, rule)
        if target is not None:
            prop.format = target


def _target_format(prop: PropertyDescriptor, rule: DeconflictRule) -> Optional[str]:
    option = rule.option
    if option == DeconflictOption.CAST_TO_BOOLEAN:
        return BOOLEAN
    if option == DeconflictOption.CAST_TO_INTEGER:
        return INTEGER
    if option == DeconflictOption.CAST_TO_FLOAT:
        return NUMBER
    if option == DeconflictOption.CAST_TO_DATE:
        return DATE_TIME if DATE_TIME in prop.value_types or INTEGER in prop.value_types else DATE
    if option == DeconflictOption.CAST_TO_STRING:
        return STRING
    if option in (DeconflictOption.CAST_TO_NULL, DeconflictOption.SKIP):
        return rule.keep_type
    return None


def resolve_conflict(value: Any, rule: DeconflictRule) -> Any:
    """
    Convert one value according to a rule.

    Returns:
        The converted value, or SKIP_RECORD when the record must be dropped
    """
    value_type = TypeDetector.discover(value)
    option = rule.option

    if value_type == NULL:
        return None

    if option == DeconflictOption.ALL:
        return value

    if option == DeconflictOption.CAST_TO_STRING:
        return _to_string(value, value_type)

    if option in (DeconflictOption.CAST_TO_NULL, DeconflictOption.SKIP):
        if value_type == rule.keep_type or (
            {value_type, rule.keep_type} <= {DATE, DATE_TIME}
        ):
            return TypeDetector.convert(value, value_type)
        return None if option == DeconflictOption.CAST_TO_NULL else SKIP_RECORD

    converted = TypeDetector.convert(value, value_type)

    if option == DeconflictOption.CAST_TO_BOOLEAN:
        if value_type == BOOLEAN:
            return converted
        if value_type in (INTEGER, NUMBER):
            return converted != 0
        return SKIP_RECORD

    if option == DeconflictOption.CAST_TO_INTEGER:
        if value_type == INTEGER:
            return converted
        if value_type == BOOLEAN:
            return 1 if converted else 0
        if value_type == NUMBER and float(converted).is_integer():
            return int(converted)
        if value_type in (DATE, DATE_TIME) and isinstance(converted, date):
            return _epoch_millis(converted)
        return SKIP_RECORD

    if option == DeconflictOption.CAST_TO_FLOAT:
        if value_type in (INTEGER, NUMBER):
            return float(converted)
        if value_type == BOOLEAN:
            return 1.0 if converted else 0.0
        return SKIP_RECORD

    if option == DeconflictOption.CAST_TO_DATE:
        if value_type in (DATE, DATE_TIME):
            return converted
        if value_type == INTEGER:
            return datetime.fromtimestamp(converted / 1000, tz=timezone.utc)
        return SKIP_RECORD

    return value


def _to_string(value: Any, value_type: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=json_default)
    return str(value)


def _epoch_millis(value: date) -> int:
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)
