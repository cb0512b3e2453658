# ==============================================
# SchemaRouter
# ==============================================
#
# PURPOSE:
#   Demultiplex record batches by schema slug onto one pipeline per
#   schema:
#
#       SchemaRouter ──┬──▶ [pre-stages] ─▶ writer ─▶ SinkStateTracker   (schema A)
#                      └──▶ [pre-stages] ─▶ writer ─▶ SinkStateTracker   (schema B)
#
#   A schema's pipeline is opened (open_pipeline) the first time one of
#   its records arrives. The router awaits each pipeline's write(), so a
#   slow writer holds back the router, which holds back the source.
#
# END OF STREAM:
#   flush() ends every pipeline and waits for each of its stages in
#   order, so the first failing stage's error is the one raised.
#
# ==============================================

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from recordflow.pipeline.stage import PipelineStage
from recordflow.sinks.base import CommitKey, WriterContext


@dataclass
class SchemaPipeline:
    schema_slug: str
    writer_context: WriterContext
    stages: List[PipelineStage] = field(default_factory=list)

    @property
    def head(self) -> PipelineStage:
        return self.stages[0]

    @property
    def records_written(self) -> int:
        return self.writer_context.writer.records_written


class SchemaRouter(PipelineStage):

    def __init__(
        self,
        open_pipeline: Callable[[str], Awaitable[SchemaPipeline]],
        name: str = "schema router",
        max_pending: int = 16,
    ):
        super().__init__(name=name, max_pending=max_pending)
        self.open_pipeline = open_pipeline
        self.pipelines: Dict[str, SchemaPipeline] = {}

    async def transform(self, chunk: Any) -> None:
        records = chunk if isinstance(chunk, list) else [chunk]

        # group by schema, keeping each schema's records in arrival order
        batches: Dict[str, list] = {}
        for context in records:
            batches.setdefault(context.schema_slug, []).append(context)

        for schema_slug, batch in batches.items():
            pipeline = self.pipelines.get(schema_slug)
            if pipeline is None:
                pipeline = await self.open_pipeline(schema_slug)
                self.pipelines[schema_slug] = pipeline
            await pipeline.head.write(batch)

    async def flush(self) -> None:
        for pipeline in self.pipelines.values():
            await pipeline.head.end()
        for pipeline in self.pipelines.values():
            for stage in pipeline.stages:
                await stage.wait_finished()

    def commit_keys(self) -> List[CommitKey]:
        """Every writer's commit keys, collected after all writers finished."""
        keys: List[CommitKey] = []
        for pipeline in self.pipelines.values():
            keys.extend(pipeline.writer_context.get_commit_keys())
        return keys

    @property
    def records_written(self) -> int:
        return sum(pipeline.records_written for pipeline in self.pipelines.values())

    def cancel_all(self) -> None:
        for pipeline in self.pipelines.values():
            for stage in pipeline.stages:
                stage.cancel()
        self.cancel()
