"""
SinkStateTracker: the last stage of every per-schema pipeline.

Sink writers push only the last record of each durably written group, so
everything that reaches the tracker is safely written. The tracker
records that record's offset as the schema's last offset and moves the
stream offset forward to it. Every schema of a stream has its own
tracker, and they finish in any order, so the stream offset only ever
grows. It is the only code that mutates the run's SinkState while
records flow.
"""

from typing import Any

from recordflow.pipeline.stage import PipelineStage
from .state import SchemaState, SinkState


class SinkStateTracker(PipelineStage):

    def __init__(self, sink_state: SinkState, name: str = "", max_pending: int = 16):
        super().__init__(name=name, max_pending=max_pending)
        self.sink_state = sink_state
        self.records_observed = 0

    async def transform(self, chunk: Any) -> None:
        records = chunk if isinstance(chunk, list) else [chunk]
        for context in records:
            self.records_observed += 1
            if context.offset is None:
                continue
            stream_state = self.sink_state.ensure_stream_state(
                context.stream_set_slug, context.stream_slug
            )
            if stream_state.stream_offset is None or stream_state.stream_offset < context.offset:
                stream_state.stream_offset = context.offset
            schema_state = stream_state.schema_states.setdefault(
                context.schema_slug, SchemaState()
            )
            schema_state.last_offset = context.offset
