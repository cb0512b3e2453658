# ==============================================
# MySQLSink ("mysql")
# ==============================================
#
# PURPOSE:
#   Write each schema to a MySQL table. Strongly typed: every column has
#   exactly one SQL type, so the fetch job deconflicts mixed-type
#   properties before any writer opens.
#
# COLUMN TYPES (sql_type_for):
#   integer     → BIGINT
#   number      → DECIMAL(p, s) from the observed precision / scale,
#                 DOUBLE when MySQL's DECIMAL limits would be exceeded
#   boolean     → BOOLEAN
#   string      → VARCHAR(255) / TEXT / LONGTEXT by observed max length
#   date        → DATE
#   date-time   → DATETIME(6)  (aware values stored as UTC)
#   object/array→ JSON
#   mixed / unknown → TEXT
#
# STAGING / COMMIT:
#   Writers insert into a staging table `_stg_<run>_<table>`.
#   commit_after_writes, for every commit key:
#       replace run → RENAME TABLE target TO old, staging TO target; drop old
#       append run  → INSERT INTO target SELECT ... FROM staging; drop staging
#                     (or a plain rename when the target does not exist yet)
#   then stores the SinkState as JSON in the `_recordflow_state` table.
#
# CONFIGURATION:
#   connection_configuration  {host, port, database}
#   credentials_configuration {user, password}
#   configuration             {table_prefix?, flush_size?}
#
# All pymysql calls run in worker threads (asyncio.to_thread) so the event
# loop keeps serving the other pipelines.
#
# ==============================================

import asyncio
import json
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from recordflow.batching.object_batcher import ObjectBatchingStage
from recordflow.config import get_config
from recordflow.errors import CommitError
from recordflow.normalization.json_values import json_default
from recordflow.normalization.type_detector import (
    TypeDetector, NULL, BOOLEAN, INTEGER, NUMBER, STRING, DATE, DATE_TIME, OBJECT, ARRAY,
)
from recordflow.sources.base import RecordStreamContext, UpdateMethod
from recordflow.storage.mysql_client import MySQLClient
from .base import (
    CommitKey,
    Sink,
    SinkSupportedStreamOptions,
    SinkWriter,
    WriterContext,
    sanitize_name,
)
from .state import SinkState


MAX_TABLE_NAME_LENGTH = 64
DECIMAL_MAX_PRECISION = 65
DECIMAL_MAX_SCALE = 30


def sql_type_for(prop) -> str:
    """
    SQL column type for an inspected property.

    Args:
        prop: PropertyDescriptor (already deconflicted)

    Returns:
        MySQL column type
    """
    value_types = [vt for vt in prop.value_types if vt != NULL]
    if len(value_types) != 1:
        return "TEXT"

    value_type = value_types[0]
    stats = prop.types.get(value_type)

    if value_type == INTEGER:
        return "BIGINT"

    if value_type == NUMBER:
        precision = stats.number_max_precision if stats else None
        scale = stats.number_max_scale if stats else None
        if precision is None or scale is None:
            return "DOUBLE"
        # max precision and max scale may come from different values
        total = max(precision + scale, 1)
        if total > DECIMAL_MAX_PRECISION or scale > DECIMAL_MAX_SCALE:
            return "DOUBLE"
        return f"DECIMAL({total},{scale})"

    if value_type == BOOLEAN:
        return "BOOLEAN"

    if value_type == STRING:
        max_length = stats.string_max_length if stats else None
        if max_length is not None and max_length <= 255:
            return "VARCHAR(255)"
        if max_length is not None and max_length <= 16383:
            return "TEXT"
        return "LONGTEXT"

    if value_type == DATE:
        return "DATE"

    if value_type == DATE_TIME:
        return "DATETIME(6)"

    if value_type in (OBJECT, ARRAY):
        return "JSON"

    return "TEXT"


def column_value(value: Any, value_type: Optional[str]) -> Any:
    """Convert a record value to what pymysql should bind for its column."""
    if value is None:
        return None

    if value_type is None:
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=json_default)
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value if isinstance(value, str) else str(value)

    if value_type in (OBJECT, ARRAY):
        return json.dumps(value, default=json_default)

    converted = TypeDetector.convert(value, value_type)
    if isinstance(converted, datetime) and converted.tzinfo is not None:
        converted = converted.astimezone(timezone.utc).replace(tzinfo=None)
    return converted


def _single_type(prop) -> Optional[str]:
    value_types = [vt for vt in prop.value_types if vt != NULL]
    return value_types[0] if len(value_types) == 1 else None


class MySQLWriter(SinkWriter):
    """Inserts record groups into one staging table."""

    def __init__(
        self,
        client: MySQLClient,
        table_name: str,
        columns: List[Tuple[str, str, Optional[str]]],
        flush_size: int = 100,
        name: str = "",
        max_pending: int = 16,
    ):
        super().__init__(flush_size=flush_size, name=name or table_name, max_pending=max_pending)
        self.client = client
        self.table_name = table_name
        # (property title, column name, value type)
        self.columns = columns

    def _row(self, record: Dict[str, Any]) -> Tuple[Any, ...]:
        return tuple(
            column_value(record.get(title), value_type)
            for title, _, value_type in self.columns
        )

    async def write_records(self, records: List[RecordStreamContext]) -> None:
        rows = [self._row(context.record) for context in records]
        column_names = [column for _, column, _ in self.columns]
        await asyncio.to_thread(self.client.insert_batch, self.table_name, column_names, rows)

    async def complete(self) -> None:
        await asyncio.to_thread(self.client.disconnect)


class MySQLSink(Sink):
    sink_type = "mysql"
    display_name = "MySQL"
    required_configuration = [
        ("connection", "host"),
        ("connection", "database"),
        ("credentials", "user"),
    ]

    def __init__(self):
        self._clients: List[MySQLClient] = []

    def is_strongly_typed(self, configuration: Dict[str, Any]) -> bool:
        return True

    def get_supported_stream_options(self, configuration, sink_state=None) -> SinkSupportedStreamOptions:
        return SinkSupportedStreamOptions(
            update_methods=[UpdateMethod.BATCH_FULL_SET, UpdateMethod.APPEND_ONLY_LOG]
        )

    def _client(self, connection_configuration, credentials_configuration) -> MySQLClient:
        client = MySQLClient(
            host=connection_configuration["host"],
            port=connection_configuration.get("port", 3306),
            user=credentials_configuration["user"],
            password=credentials_configuration.get("password", ""),
            database=connection_configuration["database"],
        )
        self._clients.append(client)
        return client

    @staticmethod
    def table_name_for(schema_title: str, configuration: Dict[str, Any]) -> str:
        prefix = configuration.get("table_prefix", "")
        return (prefix + sanitize_name(schema_title))[:MAX_TABLE_NAME_LENGTH]

    async def get_writer(
        self,
        schema,
        connection_configuration,
        credentials_configuration,
        configuration,
        update_method,
        replace_existing_data,
        job_context,
    ) -> WriterContext:
        target = self.table_name_for(schema.title, configuration)
        staging = f"_stg_{uuid.uuid4().hex[:8]}_{target}"[:MAX_TABLE_NAME_LENGTH]

        columns = []
        column_types = {}
        for prop in schema.properties.values():
            if prop.hidden:
                continue
            # records arrive keyed by the (possibly renamed) property title
            column = sanitize_name(prop.title)[:MAX_TABLE_NAME_LENGTH]
            columns.append((prop.title, column, _single_type(prop)))
            column_types[column] = sql_type_for(prop)

        client = self._client(connection_configuration, credentials_configuration)
        await asyncio.to_thread(client.connect)
        await asyncio.to_thread(client.create_table, staging, column_types)
        job_context.print("INFO", f"Created staging table {staging} for {schema.title}")

        batching = get_config().batching
        flush_size = int(configuration.get("flush_size", batching.writer_flush_size))
        writer = MySQLWriter(
            client, staging, columns, flush_size=flush_size, name=f"{schema.title} writer"
        )

        commit_key: CommitKey = {
            "schema": schema.title,
            "staging_table": staging,
            "target_table": target,
            "columns": [column for _, column, _ in columns],
            "append": not replace_existing_data,
        }

        return WriterContext(
            writer=writer,
            output_location=f"{connection_configuration['database']}.{target}",
            get_commit_keys=lambda: [commit_key],
            pre_stages=[
                ObjectBatchingStage(
                    max_size=batching.batch_size,
                    max_delay=batching.max_delay_seconds,
                    name=f"{schema.title} batching",
                )
            ],
        )

    async def commit_after_writes(
        self,
        connection_configuration,
        credentials_configuration,
        configuration,
        commit_keys,
        sink_state_key,
        sink_state,
        job_context,
    ) -> None:
        client = self._client(connection_configuration, credentials_configuration)
        await asyncio.to_thread(client.connect)
        try:
            for key in commit_keys:
                await asyncio.to_thread(self._promote, client, key)
                job_context.print(
                    "SUCCESS", f"Committed {key['schema']} to table {key['target_table']}"
                )
            state_json = json.dumps(sink_state.to_dict())
            await asyncio.to_thread(client.save_state, sink_state_key.as_string(), state_json)
        finally:
            await asyncio.to_thread(client.disconnect)

    @staticmethod
    def _promote(client: MySQLClient, key: CommitKey) -> None:
        staging = key["staging_table"]
        target = key["target_table"]

        if not client.table_exists(target):
            client.rename_tables([(staging, target)])
            return

        if key.get("append"):
            missing = set(key["columns"]) - set(client.get_current_columns(target))
            if missing:
                raise CommitError(
                    f"Table {target} has no column(s) {', '.join(sorted(missing))} "
                    f"for the appended records."
                )
            client.copy_rows(staging, target, key["columns"])
            client.drop_table(staging)
            return

        old = f"_old_{staging}"[:MAX_TABLE_NAME_LENGTH]
        client.drop_table(old)
        client.rename_tables([(target, old), (staging, target)])
        client.drop_table(old)

    async def get_sink_state(
        self,
        connection_configuration,
        credentials_configuration,
        configuration,
        sink_state_key,
        job_context,
    ) -> Optional[SinkState]:
        client = self._client(connection_configuration, credentials_configuration)
        await asyncio.to_thread(client.connect)
        try:
            state_json = await asyncio.to_thread(client.load_state, sink_state_key.as_string())
        finally:
            await asyncio.to_thread(client.disconnect)
        if state_json is None:
            return None
        return SinkState.from_dict(json.loads(state_json))

    async def close(self) -> None:
        for client in self._clients:
            await asyncio.to_thread(client.disconnect)
        self._clients = []
