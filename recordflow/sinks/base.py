# ==============================================
# Sink Contract
# ==============================================
#
# PURPOSE:
#   The capability contract every destination implements. The fetch
#   orchestrator only talks to sinks through this interface; concrete
#   sinks are picked by type string from the registry.
#
# CLASS: Sink (abstract)
# ----------------------
#   - is_strongly_typed(configuration) -> bool
#       True when the destination needs exactly one value type per
#       property (SQL columns). Triggers deconfliction.
#
#   - get_supported_stream_options(configuration, sink_state)
#       -> SinkSupportedStreamOptions(update_methods, stream_set_processing_methods)
#
#   - get_writer(schema, connection_configuration, credentials_configuration,
#                configuration, update_method, replace_existing_data,
#                job_context) -> WriterContext                    (async)
#       A writer stage, optional pre-stages to chain ahead of it, where
#       the data lands, and a get_commit_keys() callable.
#
#   - commit_after_writes(connection_configuration, credentials_configuration,
#                         configuration, commit_keys, sink_state_key,
#                         sink_state, job_context)               (async)
#       Called exactly once per run with the commit keys of EVERY writer.
#       Promotes staged data and persists the new SinkState.
#
#   - get_sink_state(connection_configuration, credentials_configuration,
#                    configuration, sink_state_key, job_context)
#       -> SinkState | None                                       (async)
#
#   - validate_configuration(...)  → ConfigurationError before any write
#   - close()                      → best-effort cleanup
#
# CLASS: SinkWriter (PipelineStage)
# ---------------------------------
#   Buffers incoming RecordStreamContexts and durably writes them in
#   groups of `flush_size` (write_records). After a group is written,
#   ONLY THE LAST record of the group is pushed downstream. That push is
#   the durability signal the state tracker relies on: whatever reaches
#   the tracker is safely written.
#
#   Any exception inside write_records is re-raised as WriteError.
#
# ==============================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from recordflow.errors import ConfigurationError, RecordflowError, WriteError
from recordflow.pipeline.stage import PipelineStage
from recordflow.sources.base import (
    RecordStreamContext,
    StreamSetProcessingMethod,
    UpdateMethod,
)


CommitKey = Dict[str, Any]


@dataclass
class SinkSupportedStreamOptions:
    update_methods: List[UpdateMethod]
    stream_set_processing_methods: List[StreamSetProcessingMethod] = field(
        default_factory=lambda: [StreamSetProcessingMethod.PER_STREAM_SET]
    )


class SinkWriter(PipelineStage):
    """Durable, group-wise writer stage."""

    def __init__(self, flush_size: int = 100, name: str = "", max_pending: int = 16):
        super().__init__(name=name, max_pending=max_pending)
        self.flush_size = flush_size
        self.records_written = 0
        self.groups_written = 0
        self._pending: List[RecordStreamContext] = []

    async def transform(self, chunk: Any) -> None:
        records = chunk if isinstance(chunk, list) else [chunk]
        self._pending.extend(records)
        while len(self._pending) >= self.flush_size:
            group = self._pending[:self.flush_size]
            self._pending = self._pending[self.flush_size:]
            await self._write_group(group)

    async def flush(self) -> None:
        if self._pending:
            group, self._pending = self._pending, []
            await self._write_group(group)
        await self.complete()

    async def _write_group(self, group: List[RecordStreamContext]) -> None:
        try:
            await self.write_records(group)
        except RecordflowError:
            raise
        except Exception as exc:
            raise WriteError(f"{self.name}: failed to write {len(group)} records: {exc}") from exc

        self.records_written += len(group)
        self.groups_written += 1
        await self.push([group[-1]])

    async def write_records(self, records: List[RecordStreamContext]) -> None:
        """Durably write one group of records."""
        raise NotImplementedError

    async def complete(self) -> None:
        """Called once after the final group is written."""


@dataclass
class WriterContext:
    """What get_writer hands back to the orchestrator."""
    writer: SinkWriter
    output_location: str
    get_commit_keys: Callable[[], List[CommitKey]] = field(default=lambda: [])
    pre_stages: List[PipelineStage] = field(default_factory=list)


class Sink(ABC):
    """A destination for records."""

    sink_type: str = ""
    display_name: str = ""

    # configuration keys that must be present: (mapping name, key)
    required_configuration: List[tuple] = []

    def validate_configuration(
        self,
        connection_configuration: Dict[str, Any],
        credentials_configuration: Dict[str, Any],
        configuration: Dict[str, Any],
    ) -> None:
        """
        Raise ConfigurationError when a required key is missing.

        Raises:
            ConfigurationError
        """
        mappings = {
            "connection": connection_configuration or {},
            "credentials": credentials_configuration or {},
            "configuration": configuration or {},
        }
        missing = [
            f"{mapping}.{key}" for mapping, key in self.required_configuration
            if mappings[mapping].get(key) in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"{self.display_name or self.sink_type} sink is missing required "
                f"configuration: {', '.join(missing)}"
            )

    @abstractmethod
    def is_strongly_typed(self, configuration: Dict[str, Any]) -> bool:
        ...

    @abstractmethod
    def get_supported_stream_options(
        self,
        configuration: Dict[str, Any],
        sink_state=None,
    ) -> SinkSupportedStreamOptions:
        ...

    @abstractmethod
    async def get_writer(
        self,
        schema,
        connection_configuration: Dict[str, Any],
        credentials_configuration: Dict[str, Any],
        configuration: Dict[str, Any],
        update_method: UpdateMethod,
        replace_existing_data: bool,
        job_context,
    ) -> WriterContext:
        ...

    @abstractmethod
    async def commit_after_writes(
        self,
        connection_configuration: Dict[str, Any],
        credentials_configuration: Dict[str, Any],
        configuration: Dict[str, Any],
        commit_keys: List[CommitKey],
        sink_state_key,
        sink_state,
        job_context,
    ) -> None:
        ...

    @abstractmethod
    async def get_sink_state(
        self,
        connection_configuration: Dict[str, Any],
        credentials_configuration: Dict[str, Any],
        configuration: Dict[str, Any],
        sink_state_key,
        job_context,
    ) -> Optional[Any]:
        ...

    async def close(self) -> None:
        pass


def sanitize_name(name: str) -> str:
    """Table / file / collection safe version of a schema title."""
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in name.strip().lower())
    cleaned = cleaned.strip("_") or "records"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned
