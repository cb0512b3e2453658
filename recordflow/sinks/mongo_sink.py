# ==============================================
# MongoSink ("mongo")
# ==============================================
#
# PURPOSE:
#   Write each schema to a MongoDB collection. Untyped: documents keep
#   whatever value types (and nesting) the records arrive with.
#
# STAGING / COMMIT:
#   replace run → writers insert into `<collection>__staging_<run>`;
#                 commit renames it over the target (dropTarget)
#   append run  → writers insert straight into the target and report no
#                 commit keys
#   commit_after_writes finally upserts the SinkState into the
#   `_recordflow_state` collection.
#
# CONFIGURATION:
#   connection_configuration  {host, port, database}
#   credentials_configuration {user?, password?}
#   configuration             {collection_prefix?, flush_size?}
#
# ==============================================

import asyncio
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from recordflow.batching.object_batcher import ObjectBatchingStage
from recordflow.config import get_config
from recordflow.sources.base import RecordStreamContext, UpdateMethod
from recordflow.storage.mongo_client import MongoClient
from .base import (
    CommitKey,
    Sink,
    SinkSupportedStreamOptions,
    SinkWriter,
    WriterContext,
    sanitize_name,
)
from .state import SinkState


def to_document_value(value: Any) -> Any:
    """BSON has no plain date or Decimal: store them as datetime / float."""
    if isinstance(value, dict):
        return {str(key): to_document_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document_value(item) for item in value]
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, Decimal):
        return float(value)
    return value


class MongoWriter(SinkWriter):
    def __init__(
        self,
        client: MongoClient,
        collection_name: str,
        flush_size: int = 100,
        name: str = "",
        max_pending: int = 16,
    ):
        super().__init__(flush_size=flush_size, name=name or collection_name, max_pending=max_pending)
        self.client = client
        self.collection_name = collection_name

    async def write_records(self, records: List[RecordStreamContext]) -> None:
        documents = [to_document_value(context.record) for context in records]
        await asyncio.to_thread(self.client.insert_batch, self.collection_name, documents)

    async def complete(self) -> None:
        await asyncio.to_thread(self.client.disconnect)


class MongoSink(Sink):
    sink_type = "mongo"
    display_name = "MongoDB"
    required_configuration = [
        ("connection", "host"),
        ("connection", "database"),
    ]

    def __init__(self):
        self._clients: List[MongoClient] = []

    def is_strongly_typed(self, configuration: Dict[str, Any]) -> bool:
        return False

    def get_supported_stream_options(self, configuration, sink_state=None) -> SinkSupportedStreamOptions:
        return SinkSupportedStreamOptions(
            update_methods=[UpdateMethod.BATCH_FULL_SET, UpdateMethod.APPEND_ONLY_LOG]
        )

    def _client(self, connection_configuration, credentials_configuration) -> MongoClient:
        credentials_configuration = credentials_configuration or {}
        client = MongoClient(
            host=connection_configuration["host"],
            port=connection_configuration.get("port", 27017),
            database=connection_configuration["database"],
            user=credentials_configuration.get("user"),
            password=credentials_configuration.get("password"),
        )
        self._clients.append(client)
        return client

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
        target = configuration.get("collection_prefix", "") + sanitize_name(schema.title)
        collection = f"{target}__staging_{uuid.uuid4().hex[:8]}" if replace_existing_data else target

        client = self._client(connection_configuration, credentials_configuration)
        await asyncio.to_thread(client.connect)

        batching = get_config().batching
        flush_size = int(configuration.get("flush_size", batching.writer_flush_size))
        writer = MongoWriter(client, collection, flush_size=flush_size, name=f"{schema.title} writer")

        commit_keys: List[CommitKey] = []
        if replace_existing_data:
            commit_keys.append({
                "schema": schema.title,
                "staging_collection": collection,
                "target_collection": target,
            })

        return WriterContext(
            writer=writer,
            output_location=f"{connection_configuration['database']}.{target}",
            get_commit_keys=lambda: list(commit_keys),
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
                await asyncio.to_thread(
                    client.rename_collection, key["staging_collection"], key["target_collection"]
                )
                job_context.print(
                    "SUCCESS",
                    f"Committed {key['schema']} to collection {key['target_collection']}",
                )
            await asyncio.to_thread(client.save_state, sink_state_key.as_string(), sink_state.to_dict())
        finally:
            await asyncio.to_thread(client.disconnect)

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
            data = await asyncio.to_thread(client.load_state, sink_state_key.as_string())
        finally:
            await asyncio.to_thread(client.disconnect)
        return SinkState.from_dict(data) if data is not None else None

    async def close(self) -> None:
        for client in self._clients:
            await asyncio.to_thread(client.disconnect)
        self._clients = []
