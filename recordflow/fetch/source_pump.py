# ==============================================
# SourcePump
# ==============================================
#
# PURPOSE:
#   Read every stream of a stream set, in order, and write the prepared
#   record batches into the fetch pipeline (the SchemaRouter).
#
# PER STREAM:
#   1. Check the sink supports the stream's update method
#      (ConfigurationError otherwise) and pick the method for this run:
#        APPEND_ONLY_LOG when the stream is an append-only log AND there
#        is prior state to resume from, BATCH_FULL_SET otherwise.
#   2. Open the stream (with the prior StreamState when resuming).
#   3. For every batch:
#        - drop records at or before the stored stream offset (resume)
#        - drop hidden properties, apply property renames (title)
#        - apply deconfliction rules; SKIP_RECORD drops the record
#        - wrap as RecordStreamContext and write() (awaits backpressure)
#   4. Between batches, honour a stop request: stop reading, remember
#      that the run stopped early.
#
# ==============================================

import asyncio
from typing import Callable, Dict, List, Optional

from recordflow.analysis.deconflict import SKIP_RECORD, DeconflictRule, resolve_conflict
from recordflow.analysis.schema import SchemaDescriptor
from recordflow.errors import ConfigurationError, SourceError
from recordflow.pipeline.stage import PipelineStage
from recordflow.sinks.state import SinkState, StreamState
from recordflow.sources.base import (
    RecordContext,
    RecordStreamContext,
    Source,
    StreamCallbacks,
    StreamSetPreview,
    StreamSummary,
    UpdateMethod,
)


class SourcePump:

    def __init__(
        self,
        source: Source,
        preview: StreamSetPreview,
        schemas: Dict[str, SchemaDescriptor],
        sink_state: Optional[SinkState],
        supported_update_methods: List[UpdateMethod],
        callbacks: StreamCallbacks,
        deconflict_rules: Optional[Dict[str, Dict[str, DeconflictRule]]] = None,
        stop_event: Optional[asyncio.Event] = None,
        on_records: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            source: Where records come from
            preview: The stream set to read
            schemas: Package schemas by slug
            sink_state: State of the last committed run (None: full transfer)
            supported_update_methods: What the sink accepts
            callbacks: Stream lifecycle callbacks
            deconflict_rules: schema slug -> property -> rule
            stop_event: Set to stop reading after the current batch
            on_records: Called with the number of records written per batch
        """
        self.source = source
        self.preview = preview
        self.schemas = schemas
        self.sink_state = sink_state
        self.supported_update_methods = supported_update_methods
        self.callbacks = callbacks
        self.deconflict_rules = deconflict_rules or {}
        self.stop_event = stop_event or asyncio.Event()
        self.on_records = on_records

        self.current_update_method = UpdateMethod.BATCH_FULL_SET
        self.opened_streams: List[str] = []
        self.stopped_early = False
        self.records_read = 0
        self.records_skipped = 0

    def update_method_for(self, summary: StreamSummary) -> UpdateMethod:
        if summary.update_method not in self.supported_update_methods:
            supported = ", ".join(method.value for method in self.supported_update_methods)
            raise ConfigurationError(
                f"Stream {summary.name} uses update method {summary.update_method.value}, "
                f"but the sink only supports {supported}."
            )
        if self.sink_state is None:
            return UpdateMethod.BATCH_FULL_SET
        if summary.update_method == UpdateMethod.APPEND_ONLY_LOG:
            return UpdateMethod.APPEND_ONLY_LOG
        return UpdateMethod.BATCH_FULL_SET

    async def run(self, target: PipelineStage) -> int:
        """
        Pump every stream into `target`. Does not end `target`.

        Returns:
            Number of records written to `target`
        """
        forwarded = 0
        for summary in self.preview.stream_summaries:
            if self.stop_event.is_set():
                self.stopped_early = True
                break

            update_method = self.update_method_for(summary)
            stream_state = None
            if update_method != UpdateMethod.BATCH_FULL_SET and self.sink_state is not None:
                stream_state = self.sink_state.get_stream_state(self.preview.slug, summary.name)

            self.current_update_method = update_method
            opened = await summary.open_stream(stream_state, self.callbacks)
            self.opened_streams.append(summary.name)
            self.callbacks.starting_stream(
                summary.name, opened.expected_record_count, opened.expected_total_raw_bytes
            )

            try:
                async for batch in opened.records:
                    self.records_read += len(batch)
                    contexts = self._prepare(batch, summary.name, stream_state)
                    if contexts:
                        await target.write(contexts)
                        forwarded += len(contexts)
                        if self.on_records is not None:
                            self.on_records(len(contexts))
                    if self.stop_event.is_set():
                        self.stopped_early = True
                        break
            finally:
                close = getattr(opened.records, "aclose", None)
                if close is not None:
                    await close()

            if self.stopped_early:
                break

        return forwarded

    def _prepare(
        self,
        batch: List[RecordContext],
        stream_name: str,
        stream_state: Optional[StreamState],
    ) -> List[RecordStreamContext]:
        resume_after = stream_state.stream_offset if stream_state is not None else None
        prepared = []
        for context in batch:
            if resume_after is not None and context.offset is not None and context.offset <= resume_after:
                self.records_skipped += 1
                continue

            schema = self.schemas.get(context.schema_slug)
            if schema is None:
                raise SourceError(
                    f"Record from stream {stream_name} has unknown schema '{context.schema_slug}'"
                )

            if not self._sanitize(context.record, context.schema_slug, schema):
                self.records_skipped += 1
                continue

            prepared.append(RecordStreamContext(
                record_context=context,
                source_type=self.source.source_type,
                source_slug=self.source.slug,
                stream_set_slug=self.preview.slug,
                stream_slug=stream_name,
            ))
        return prepared

    def _sanitize(self, record: dict, schema_slug: str, schema: SchemaDescriptor) -> bool:
        """Apply hidden / rename / deconflict in place. False: skip the record."""
        for key, prop in schema.properties.items():
            if prop.hidden:
                record.pop(key, None)
            elif prop.title != key and key in record:
                record[prop.title] = record.pop(key)

        for key, rule in self.deconflict_rules.get(schema_slug, {}).items():
            prop = schema.properties.get(key)
            record_key = prop.title if prop is not None else key
            if record_key not in record:
                continue
            resolved = resolve_conflict(record[record_key], rule)
            if resolved is SKIP_RECORD:
                return False
            record[record_key] = resolved
        return True
