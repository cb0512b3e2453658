# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests.
#
# FIXTURES:
# ---------
# sample_records   → a handful of realistic records
# make_package     → inspect records into a PackageDescriptor
# memory_sink      → in-memory Sink that records writes and commits
# sink_factory     → build a MemorySink with custom failure modes or slow writers
# job_context      → HeadlessJobContext (never prompts a human)
#
# NOTES:
# ------
# - async tests run under pytest-asyncio (asyncio_mode = "auto")
# - Use tmp_path for temporary files
# ==============================================

import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest

from recordflow.analysis.schema import PackageDescriptor
from recordflow.analysis.schema_inspector import SchemaInspector
from recordflow.job_context import HeadlessJobContext
from recordflow.sinks.base import Sink, SinkSupportedStreamOptions, SinkWriter, WriterContext
from recordflow.sinks.state import SinkState
from recordflow.sources.base import RecordContext, UpdateMethod


class MemoryWriter(SinkWriter):
    """Keeps written records in its sink; optionally fails every group."""

    def __init__(self, sink: "MemorySink", schema_title: str, flush_size: int = 2):
        super().__init__(flush_size=flush_size, name=f"{schema_title} writer")
        self.sink = sink
        self.schema_title = schema_title

    async def write_records(self, records) -> None:
        if self.sink.fail_writes:
            raise RuntimeError("disk full")
        delay = self.sink.write_delays.get(self.schema_title)
        if delay:
            await asyncio.sleep(delay)
        self.sink.written.setdefault(self.schema_title, []).extend(
            dict(context.record) for context in records
        )


class MemorySink(Sink):
    sink_type = "memory"
    display_name = "Memory"

    def __init__(
        self,
        strongly_typed: bool = False,
        fail_writes: bool = False,
        fail_commit: bool = False,
        keys_per_writer: int = 2,
        flush_size: int = 2,
        write_delays: Optional[Dict[str, float]] = None,
    ):
        self.strongly_typed = strongly_typed
        self.fail_writes = fail_writes
        self.fail_commit = fail_commit
        self.keys_per_writer = keys_per_writer
        self.flush_size = flush_size
        self.write_delays = write_delays or {}

        self.stored_state: Optional[SinkState] = None
        self.written: Dict[str, List[Dict[str, Any]]] = {}
        self.writer_requests: List[tuple] = []
        self.commits: List[List[dict]] = []
        self.closed = False

    def is_strongly_typed(self, configuration) -> bool:
        return self.strongly_typed

    def get_supported_stream_options(self, configuration, sink_state=None) -> SinkSupportedStreamOptions:
        return SinkSupportedStreamOptions(
            update_methods=[UpdateMethod.BATCH_FULL_SET, UpdateMethod.APPEND_ONLY_LOG]
        )

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
        self.writer_requests.append((schema.title, update_method, replace_existing_data))
        keys = [{"schema": schema.title, "part": part} for part in range(self.keys_per_writer)]
        return WriterContext(
            writer=MemoryWriter(self, schema.title, flush_size=self.flush_size),
            output_location=f"memory://{schema.title}",
            get_commit_keys=lambda: keys,
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
        if self.fail_commit:
            raise RuntimeError("state table is read-only")
        self.commits.append(list(commit_keys))
        self.stored_state = copy.deepcopy(sink_state)

    async def get_sink_state(
        self,
        connection_configuration,
        credentials_configuration,
        configuration,
        sink_state_key,
        job_context,
    ) -> Optional[SinkState]:
        return copy.deepcopy(self.stored_state)

    async def close(self) -> None:
        self.closed = True


# ==============================================
# Fixtures
# ==============================================

@pytest.fixture
def sample_records():
    """Sample records of a small order feed."""
    return [
        {"order_id": 1, "email": "ana@example.com", "amount": "19.90", "paid": True},
        {"order_id": 2, "email": "ben@example.com", "amount": "5.00", "paid": False},
        {"order_id": 3, "email": "cho@example.com", "amount": "120.25", "paid": True},
        {"order_id": 4, "email": "dev@example.com", "amount": "7.5", "paid": True},
        {"order_id": 5, "email": "eli@example.com", "amount": "42", "paid": False},
    ]


@pytest.fixture
def make_package():
    """Build a PackageDescriptor by inspecting records per schema slug."""
    def _make(slug: str, records_by_schema: Dict[str, List[Dict[str, Any]]]) -> PackageDescriptor:
        inspector = SchemaInspector()
        for schema_slug, records in records_by_schema.items():
            inspector.inspect_batch([
                RecordContext(record=dict(record), schema_slug=schema_slug) for record in records
            ])
        return PackageDescriptor(slug=slug, schemas=inspector.finish())
    return _make


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def sink_factory():
    return MemorySink


@pytest.fixture
def job_context():
    return HeadlessJobContext()
