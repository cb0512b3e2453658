# ==============================================
# Tests for MySQLSink
# ==============================================
#
# Column typing and commit promotion are tested against a fake client;
# no MySQL server is needed.
# ==============================================

from datetime import date, datetime, timedelta, timezone

import pytest

from recordflow.analysis.schema import PropertyDescriptor
from recordflow.analysis.value_stats import ValueTypeStatistics
from recordflow.errors import CommitError, ConfigurationError
from recordflow.fetch.orchestrator import fetch
from recordflow.job_context import HeadlessJobContext
from recordflow.sinks.mysql_sink import MySQLSink, column_value, sql_type_for
from recordflow.sources.memory_source import MemorySource
from recordflow.storage.mysql_client import quote_identifier


def prop(format, **stats):
    value_types = format.split(",")
    return PropertyDescriptor(
        title="p",
        format=format,
        types={vt: ValueTypeStatistics(value_type=vt, **(stats if vt == value_types[-1] else {}))
               for vt in value_types},
    )


class FakeClient:
    """Records what _promote asks the database to do."""

    def __init__(self, tables=None):
        self.tables = dict(tables or {})
        self.calls = []

    def table_exists(self, name):
        return name in self.tables

    def rename_tables(self, pairs):
        self.calls.append(("rename", list(pairs)))
        for old, new in pairs:
            self.tables[new] = self.tables.pop(old)

    def drop_table(self, name):
        self.calls.append(("drop", name))
        self.tables.pop(name, None)

    def get_current_columns(self, name):
        return self.tables[name]

    def copy_rows(self, source, target, columns):
        self.calls.append(("copy", source, target, list(columns)))


def commit_key(append=False):
    return {
        "schema": "orders",
        "staging_table": "_stg_1234abcd_orders",
        "target_table": "orders",
        "columns": ["id", "amount"],
        "append": append,
    }


class TestSqlTypes:

    def test_integer(self):
        assert sql_type_for(prop("integer")) == "BIGINT"

    def test_nullable_integer(self):
        assert sql_type_for(prop("null,integer")) == "BIGINT"

    def test_decimal_from_precision_and_scale(self):
        assert sql_type_for(prop("number", number_max_precision=5, number_max_scale=2)) == "DECIMAL(7,2)"

    def test_decimal_limits_fall_back_to_double(self):
        assert sql_type_for(prop("number", number_max_precision=60, number_max_scale=10)) == "DOUBLE"
        assert sql_type_for(prop("number", number_max_precision=3, number_max_scale=31)) == "DOUBLE"

    @pytest.mark.parametrize("max_length,expected", [
        (10, "VARCHAR(255)"),
        (1000, "TEXT"),
        (20000, "LONGTEXT"),
    ])
    def test_string_by_length(self, max_length, expected):
        assert sql_type_for(prop("string", string_max_length=max_length)) == expected

    def test_other_types(self):
        assert sql_type_for(prop("boolean")) == "BOOLEAN"
        assert sql_type_for(prop("date")) == "DATE"
        assert sql_type_for(prop("date-time")) == "DATETIME(6)"
        assert sql_type_for(prop("object")) == "JSON"
        assert sql_type_for(prop("array")) == "JSON"

    def test_mixed_types_become_text(self):
        assert sql_type_for(prop("integer,string")) == "TEXT"


class TestColumnValues:

    def test_aware_datetime_is_stored_as_utc(self):
        value = datetime(2024, 1, 31, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert column_value(value, "date-time") == datetime(2024, 1, 31, 10, 0)

    def test_objects_are_json(self):
        assert column_value({"a": [1, 2]}, "object") == '{"a": [1, 2]}'

    def test_strings_are_converted_to_column_type(self):
        assert column_value("42", "integer") == 42
        assert column_value("2024-01-31", "date") == date(2024, 1, 31)

    def test_none_stays_none(self):
        assert column_value(None, "integer") is None

    def test_untyped_column_gets_text(self):
        assert column_value(5, None) == "5"
        assert column_value(date(2024, 1, 31), None) == "2024-01-31"


class TestPromote:

    def test_new_target_is_renamed_into_place(self):
        client = FakeClient({"_stg_1234abcd_orders": ["id", "amount"]})

        MySQLSink._promote(client, commit_key())

        assert client.calls == [("rename", [("_stg_1234abcd_orders", "orders")])]
        assert "orders" in client.tables

    def test_replace_swaps_tables(self):
        client = FakeClient({"_stg_1234abcd_orders": ["id", "amount"], "orders": ["id"]})

        MySQLSink._promote(client, commit_key())

        old = "_old__stg_1234abcd_orders"
        assert ("rename", [("orders", old), ("_stg_1234abcd_orders", "orders")]) in client.calls
        assert client.calls[-1] == ("drop", old)
        assert client.tables == {"orders": ["id", "amount"]}

    def test_append_copies_rows(self):
        client = FakeClient({"_stg_1234abcd_orders": ["id", "amount"], "orders": ["id", "amount"]})

        MySQLSink._promote(client, commit_key(append=True))

        assert client.calls == [
            ("copy", "_stg_1234abcd_orders", "orders", ["id", "amount"]),
            ("drop", "_stg_1234abcd_orders"),
        ]

    def test_append_with_missing_columns_fails(self):
        client = FakeClient({"_stg_1234abcd_orders": ["id", "amount"], "orders": ["id"]})

        with pytest.raises(CommitError, match="amount"):
            MySQLSink._promote(client, commit_key(append=True))


class TestConfiguration:

    def test_table_name_uses_prefix_and_sanitized_title(self):
        assert MySQLSink.table_name_for("Order Items", {"table_prefix": "raw_"}) == "raw_order_items"

    def test_requires_host_database_and_user(self):
        with pytest.raises(ConfigurationError) as excinfo:
            MySQLSink().validate_configuration({"host": "db"}, {}, {})
        assert "connection.database" in str(excinfo.value)
        assert "credentials.user" in str(excinfo.value)

    def test_is_strongly_typed(self):
        assert MySQLSink().is_strongly_typed({})


class TestQuoteIdentifier:

    def test_backticks_are_escaped(self):
        assert quote_identifier("we`ird") == "`we``ird`"


class FakeServer:
    """Shared 'database' behind every FakeMySQLClient."""

    def __init__(self):
        self.tables = {}
        self.rows = {}
        self.states = {}


class FakeMySQLClient(FakeClient):
    server = None

    def __init__(self, host, port, user, password, database, connect_timeout=10):
        self.calls = []
        self.tables = self.server.tables

    def connect(self):
        pass

    def disconnect(self):
        pass

    def create_table(self, name, columns, like=None):
        self.tables[name] = dict(columns)
        self.server.rows[name] = []

    def insert_batch(self, table_name, columns, rows):
        self.server.rows[table_name].extend(dict(zip(columns, row)) for row in rows)
        return len(rows)

    def rename_tables(self, pairs):
        super().rename_tables(pairs)
        for old, new in pairs:
            self.server.rows[new] = self.server.rows.pop(old)

    def copy_rows(self, source, target, columns):
        self.server.rows[target].extend(self.server.rows[source])

    def save_state(self, key, state_json):
        self.server.states[key] = state_json

    def load_state(self, key):
        return self.server.states.get(key)


class TestMySQLFetch:

    @pytest.fixture
    def server(self, monkeypatch):
        server = FakeServer()
        monkeypatch.setattr(FakeMySQLClient, "server", server)
        monkeypatch.setattr("recordflow.sinks.mysql_sink.MySQLClient", FakeMySQLClient)
        return server

    async def test_conflicts_resolved_before_typed_columns(self, server, make_package):
        records = [{"id": 1, "code": 10}, {"id": 2, "code": "A7"}, {"id": 3, "code": 30}]
        package = make_package("shop", {"orders": records})
        source = MemorySource("shop", {"main": records}, schema_slug="orders")

        result = await fetch(
            package, source, MySQLSink(), HeadlessJobContext(),
            sink_connection_configuration={"host": "db", "database": "shop"},
            sink_credentials_configuration={"user": "loader"},
        )

        assert result.records_committed == 3
        assert server.tables["orders"] == {"id": "BIGINT", "code": "VARCHAR(255)"}
        assert [row["code"] for row in server.rows["orders"]] == ["10", "A7", "30"]
        assert "local/shop/v1" in server.states
        assert not any(name.startswith("_stg_") for name in server.tables)
