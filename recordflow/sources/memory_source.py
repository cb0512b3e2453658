# ==============================================
# MemorySource
# ==============================================
#
# PURPOSE:
#   Serve records that are already in memory as a stream set: one stream
#   per entry of `streams`. Used for programmatic transfers and tests.
#
# OFFSETS:
#   A record's offset is its index within its stream, unless it arrives
#   as a RecordContext that already carries one.
#
# UPDATE HASH:
#   sha256 over the canonical JSON (sorted keys) of a stream's records,
#   so an unchanged list of records produces an unchanged hash.
#
# ==============================================

import hashlib
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from recordflow.normalization.json_values import json_default
from .base import (
    OpenedStream,
    RecordContext,
    Source,
    StreamCallbacks,
    StreamSetPreview,
    StreamSummary,
    UpdateMethod,
)


RecordInput = Union[Dict[str, Any], RecordContext]


def content_hash(records: List[RecordContext]) -> str:
    digest = hashlib.sha256()
    for context in records:
        line = json.dumps(
            [context.schema_slug, context.record], sort_keys=True, default=json_default
        )
        digest.update(line.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


class MemorySource(Source):
    source_type = "memory"

    def __init__(
        self,
        slug: str,
        streams: Dict[str, List[RecordInput]],
        schema_slug: str = "records",
        update_method: UpdateMethod = UpdateMethod.BATCH_FULL_SET,
        batch_size: int = 100,
    ):
        """
        Args:
            slug: Stream set slug
            streams: Stream name -> records (plain dicts or RecordContexts)
            schema_slug: Schema for plain-dict records
            update_method: Update method reported for every stream
            batch_size: Records per emitted batch
        """
        super().__init__(slug)
        self.update_method = update_method
        self.batch_size = batch_size
        self.streams: Dict[str, List[RecordContext]] = {}
        for name, records in streams.items():
            contexts = []
            for index, record in enumerate(records):
                if isinstance(record, RecordContext):
                    if record.offset is None:
                        record.offset = index
                    contexts.append(record)
                else:
                    contexts.append(RecordContext(record=record, schema_slug=schema_slug, offset=index))
            self.streams[name] = contexts

    async def get_stream_set_preview(self) -> StreamSetPreview:
        summaries = []
        for name, records in self.streams.items():
            summaries.append(StreamSummary(
                name=name,
                open_stream=self._opener(name),
                update_method=self.update_method,
                update_hash=content_hash(records),
                expected_record_count=len(records),
            ))
        hashes = "".join(summary.update_hash or "" for summary in summaries)
        return StreamSetPreview(
            slug=self.slug,
            stream_summaries=summaries,
            update_hash=hashlib.sha256(hashes.encode("utf-8")).hexdigest(),
        )

    def _opener(self, name: str):
        async def open_stream(stream_state, callbacks: Optional[StreamCallbacks] = None) -> OpenedStream:
            records = self.streams[name]
            return OpenedStream(
                records=self._batches(name, records, callbacks or StreamCallbacks()),
                expected_record_count=len(records),
            )
        return open_stream

    async def _batches(
        self,
        name: str,
        records: List[RecordContext],
        callbacks: StreamCallbacks,
    ) -> AsyncIterator[List[RecordContext]]:
        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            size = sum(
                len(json.dumps(context.record, default=json_default)) + 1 for context in batch
            )
            callbacks.bytes_received(name, size)
            # fresh copies: downstream stages rewrite records in place
            yield [
                RecordContext(
                    record=dict(context.record),
                    schema_slug=context.schema_slug,
                    offset=context.offset,
                )
                for context in batch
            ]
