# ==============================================
# Tests for type conflict detection and resolution
# ==============================================

from datetime import date, datetime, timezone

import pytest

from recordflow.analysis.deconflict import (
    ALWAYS_OFFERED,
    SKIP_RECORD,
    DeconflictOption,
    DeconflictRule,
    build_deconflict_rules,
    find_type_conflicts,
    get_deconflict_choices,
    merge_value_formats,
    most_common_type,
    resolve_conflict,
    update_schema_with_deconflict_options,
)
from recordflow.analysis.schema import PropertyDescriptor, SchemaDescriptor
from recordflow.analysis.schema_inspector import SchemaInspector
from recordflow.sources.base import RecordContext


def inspected_schema(records):
    inspector = SchemaInspector()
    inspector.inspect_batch([RecordContext(record=r, schema_slug="s") for r in records])
    return inspector.schemas["s"]


def rule(option, keep_type=None):
    return DeconflictRule(property_title="p", option=option, keep_type=keep_type)


class TestFindConflicts:

    def test_string_and_integer_conflict(self):
        schema = inspected_schema([{"p": 5}, {"p": "abc"}, {"q": 1}])

        conflicts = find_type_conflicts(schema)

        assert len(conflicts) == 1
        assert conflicts[0].property_title == "p"
        assert conflicts[0].value_types == ["integer", "string"]

    def test_null_is_not_a_conflict(self):
        schema = inspected_schema([{"p": 5}, {"p": None}])
        assert find_type_conflicts(schema) == []

    def test_date_and_date_time_fold_together(self):
        schema = SchemaDescriptor(title="s", properties={
            "when": PropertyDescriptor(title="when", format="date,date-time"),
        })
        assert find_type_conflicts(schema) == []

    def test_hidden_properties_are_ignored(self):
        schema = SchemaDescriptor(title="s", properties={
            "p": PropertyDescriptor(title="p", format="integer,string", hidden=True),
        })
        assert find_type_conflicts(schema) == []

    def test_merge_value_formats(self):
        assert merge_value_formats(["string", "date-time", "date"]) == ["date", "string"]


class TestChoices:

    def test_numeric_types_offer_boolean_and_float(self):
        choices = get_deconflict_choices(["boolean", "integer"])
        assert choices[:3] == [
            DeconflictOption.CAST_TO_BOOLEAN,
            DeconflictOption.CAST_TO_INTEGER,
            DeconflictOption.CAST_TO_FLOAT,
        ]
        assert choices[3:] == ALWAYS_OFFERED

    def test_dates_and_integers_offer_date_cast(self):
        choices = get_deconflict_choices(["date", "integer"])
        assert DeconflictOption.CAST_TO_DATE in choices
        assert DeconflictOption.CAST_TO_INTEGER in choices
        assert DeconflictOption.CAST_TO_FLOAT not in choices

    def test_strings_only_get_generic_options(self):
        assert get_deconflict_choices(["integer", "string"]) == ALWAYS_OFFERED


class TestRules:

    def test_most_common_type(self):
        schema = inspected_schema([{"p": 1}, {"p": 2}, {"p": "x"}])
        assert most_common_type(schema.properties["p"]) == "integer"

    def test_build_rules_accepts_option_values(self):
        schema = inspected_schema([{"p": 1}, {"p": 2}, {"p": "x"}])

        rules = build_deconflict_rules(schema, {"p": "SKIP", "missing": "ALL"})

        assert list(rules) == ["p"]
        assert rules["p"].option == DeconflictOption.SKIP
        assert rules["p"].keep_type == "integer"

    @pytest.mark.parametrize("option,expected", [
        (DeconflictOption.CAST_TO_STRING, "string"),
        (DeconflictOption.CAST_TO_FLOAT, "number"),
        (DeconflictOption.CAST_TO_NULL, "integer"),
        (DeconflictOption.ALL, "integer,string"),
    ])
    def test_schema_format_follows_rule(self, option, expected):
        schema = inspected_schema([{"p": 1}, {"p": 2}, {"p": "x"}])
        rules = build_deconflict_rules(schema, {"p": option})

        update_schema_with_deconflict_options(schema, rules)

        assert schema.properties["p"].format == expected


class TestResolveConflict:

    def test_null_stays_null(self):
        assert resolve_conflict(None, rule(DeconflictOption.CAST_TO_INTEGER)) is None

    def test_cast_to_string(self):
        r = rule(DeconflictOption.CAST_TO_STRING)
        assert resolve_conflict(5, r) == "5"
        assert resolve_conflict(True, r) == "true"
        assert resolve_conflict(date(2024, 1, 31), r) == "2024-01-31"
        assert resolve_conflict({"a": 1}, r) == '{"a": 1}'

    def test_cast_to_boolean(self):
        r = rule(DeconflictOption.CAST_TO_BOOLEAN)
        assert resolve_conflict(0, r) is False
        assert resolve_conflict(2.5, r) is True
        assert resolve_conflict("abc", r) is SKIP_RECORD

    def test_cast_to_integer(self):
        r = rule(DeconflictOption.CAST_TO_INTEGER)
        assert resolve_conflict(True, r) == 1
        assert resolve_conflict("12", r) == 12
        assert resolve_conflict(date(1970, 1, 2), r) == 86_400_000
        assert resolve_conflict(2.5, r) is SKIP_RECORD

    def test_cast_to_float(self):
        r = rule(DeconflictOption.CAST_TO_FLOAT)
        assert resolve_conflict(3, r) == 3.0
        assert resolve_conflict(False, r) == 0.0

    def test_cast_to_date_reads_epoch_millis(self):
        r = rule(DeconflictOption.CAST_TO_DATE)
        assert resolve_conflict(86_400_000, r) == datetime(1970, 1, 2, tzinfo=timezone.utc)
        assert resolve_conflict("2024-01-31", r) == date(2024, 1, 31)

    def test_cast_to_null_keeps_common_type(self):
        r = rule(DeconflictOption.CAST_TO_NULL, keep_type="integer")
        assert resolve_conflict(7, r) == 7
        assert resolve_conflict("abc", r) is None

    def test_skip_drops_other_types(self):
        r = rule(DeconflictOption.SKIP, keep_type="integer")
        assert resolve_conflict("7", r) == 7
        assert resolve_conflict("abc", r) is SKIP_RECORD

    def test_all_passes_values_through(self):
        r = rule(DeconflictOption.ALL)
        assert resolve_conflict("abc", r) == "abc"
        assert resolve_conflict(5, r) == 5
