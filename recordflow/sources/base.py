# ==============================================
# Source Contract
# ==============================================
#
# PURPOSE:
#   What the fetch orchestrator needs from a record source.
#
#   Source ──get_stream_set_preview()──▶ StreamSetPreview
#                                           └── StreamSummary (one per stream)
#                                                 └── open_stream(state, callbacks)
#                                                        ──▶ OpenedStream.records
#                                                            (async iterator of
#                                                             RecordContext batches)
#
# RECORDS:
#   RecordContext        → one record + the schema it belongs to + its offset
#   RecordStreamContext  → RecordContext + where it came from (source,
#                          stream set, stream); what flows through sinks
#
# CALLBACKS:
#   A source reports stream lifecycle through StreamCallbacks: stream
#   started, waiting to reconnect, reconnecting, bytes received.
#
# UPDATE METHODS:
#   BATCH_FULL_SET   → every run re-reads the whole stream; the sink
#                      replaces existing data
#   APPEND_ONLY_LOG  → records only ever get appended; a run resumes after
#                      the last committed offset
#   CONTINUOUS       → a never-ending append-only stream
#
# ==============================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from recordflow.sinks.state import StreamState


class UpdateMethod(Enum):
    BATCH_FULL_SET = "BATCH_FULL_SET"
    APPEND_ONLY_LOG = "APPEND_ONLY_LOG"
    CONTINUOUS = "CONTINUOUS"


class StreamSetProcessingMethod(Enum):
    PER_STREAM_SET = "PER_STREAM_SET"
    PER_STREAM = "PER_STREAM"


@dataclass
class RecordContext:
    """One record as produced by a source."""
    record: Dict[str, Any]
    schema_slug: str
    offset: Optional[int] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RecordStreamContext:
    """A record plus the stream it was read from."""
    record_context: RecordContext
    source_type: str
    source_slug: str
    stream_set_slug: str
    stream_slug: str

    @property
    def record(self) -> Dict[str, Any]:
        return self.record_context.record

    @property
    def schema_slug(self) -> str:
        return self.record_context.schema_slug

    @property
    def offset(self) -> Optional[int]:
        return self.record_context.offset


class StreamCallbacks:
    """Lifecycle notifications from a source. Every method is optional."""

    def starting_stream(
        self,
        stream_name: str,
        expected_record_count: Optional[int] = None,
        expected_total_raw_bytes: Optional[int] = None,
    ) -> None:
        pass

    def waiting_to_reconnect(self, stream_name: str, delay_seconds: float) -> None:
        pass

    def reconnecting(self, stream_name: str) -> None:
        pass

    def bytes_received(self, stream_name: str, byte_count: int) -> None:
        """Called with the number of NEW bytes read since the last call."""


@dataclass
class OpenedStream:
    records: AsyncIterator[List[RecordContext]]
    expected_record_count: Optional[int] = None
    expected_total_raw_bytes: Optional[int] = None


OpenStream = Callable[[Optional["StreamState"], StreamCallbacks], Awaitable[OpenedStream]]


@dataclass
class StreamSummary:
    """One independently trackable stream of a stream set."""
    name: str
    open_stream: OpenStream
    update_method: UpdateMethod = UpdateMethod.BATCH_FULL_SET
    update_hash: Optional[str] = None
    expected_record_count: Optional[int] = None
    expected_total_raw_bytes: Optional[int] = None


@dataclass
class StreamSetPreview:
    """The streams a source will deliver in this run."""
    slug: str
    stream_summaries: List[StreamSummary] = field(default_factory=list)
    update_hash: Optional[str] = None

    @property
    def expected_records_total(self) -> Optional[int]:
        counts = [summary.expected_record_count for summary in self.stream_summaries]
        if not counts or any(count is None for count in counts):
            return None
        return sum(counts)

    @property
    def expected_bytes_total(self) -> Optional[int]:
        sizes = [summary.expected_total_raw_bytes for summary in self.stream_summaries]
        if not sizes or any(size is None for size in sizes):
            return None
        return sum(sizes)


class Source(ABC):
    """A record source."""

    source_type: str = ""

    def __init__(self, slug: str):
        self.slug = slug

    @abstractmethod
    async def get_stream_set_preview(self) -> StreamSetPreview:
        ...

    async def close(self) -> None:
        pass
