# ==============================================
# Tests for sink state, its tracker and its store
# ==============================================

import asyncio

import pytest

from recordflow.fetch.orchestrator import new_records_available
from recordflow.persistence.state_store import SinkStateStore
from recordflow.pipeline.stage import PipelineStage
from recordflow.sinks.base import SinkWriter
from recordflow.sinks.state import SinkState, SinkStateKey, StreamState
from recordflow.sinks.state_tracker import SinkStateTracker
from recordflow.sources.base import (
    RecordContext,
    RecordStreamContext,
    StreamSetPreview,
    StreamSummary,
)


@pytest.fixture
def key():
    return SinkStateKey("local", "shop", 1)


def stream_context(offset, schema_slug="orders", stream_slug="main"):
    return RecordStreamContext(
        record_context=RecordContext(record={"i": offset}, schema_slug=schema_slug, offset=offset),
        source_type="memory",
        source_slug="shop",
        stream_set_slug="shop",
        stream_slug=stream_slug,
    )


async def _never_opened(stream_state, callbacks):
    raise AssertionError("not opened in these tests")


def preview_with(hashes):
    return StreamSetPreview(
        slug="shop",
        stream_summaries=[
            StreamSummary(name=name, open_stream=_never_opened, update_hash=update_hash)
            for name, update_hash in hashes.items()
        ],
    )


class TestSinkStateKey:

    def test_string_forms(self, key):
        assert key.as_string() == "local/shop/v1"
        assert key.file_name() == "local__shop__v1.json"


class TestSinkState:

    def test_round_trip(self):
        state = SinkState(package_version="1.2.0")
        stream = state.ensure_stream_state("shop", "main")
        stream.stream_offset = 41
        stream.update_hash = "abc"

        restored = SinkState.from_dict(state.to_dict())

        assert restored.package_version == "1.2.0"
        assert restored.timestamp == state.timestamp
        assert restored.get_stream_state("shop", "main") == stream

    def test_camel_case_keys(self):
        state = SinkState(package_version="1.0.0")
        state.ensure_stream_state("shop", "main").stream_offset = 3

        data = state.to_dict()

        assert data["streamSets"]["shop"]["streamStates"]["main"]["streamOffset"] == 3

    def test_missing_stream_state(self):
        assert SinkState(package_version="1.0.0").get_stream_state("shop", "main") is None


class TestSinkStateTracker:

    async def test_records_offsets_per_stream_and_schema(self):
        state = SinkState(package_version="1.0.0")
        tracker = SinkStateTracker(state)

        await tracker.write([stream_context(4)])
        await tracker.write([stream_context(9, schema_slug="refunds")])
        await tracker.write([stream_context(2, stream_slug="other")])
        await tracker.end()
        await tracker.wait_finished()

        main = state.get_stream_state("shop", "main")
        assert main.stream_offset == 9
        assert main.schema_states["orders"].last_offset == 4
        assert main.schema_states["refunds"].last_offset == 9
        assert state.get_stream_state("shop", "other").stream_offset == 2
        assert tracker.records_observed == 3

    async def test_records_without_offset_leave_state_alone(self):
        state = SinkState(package_version="1.0.0")
        tracker = SinkStateTracker(state)
        context = stream_context(0)
        context.record_context.offset = None

        await tracker.write([context])
        await tracker.end()
        await asyncio.wait_for(tracker.wait_finished(), timeout=1)

        assert state.stream_sets == {}

    async def test_stream_offset_never_moves_backwards(self):
        state = SinkState(package_version="1.0.0")
        refunds = SinkStateTracker(state)
        orders = SinkStateTracker(state)

        await refunds.write([stream_context(16, schema_slug="refunds")])
        await refunds.end()
        await refunds.wait_finished()
        # the slower schema reports its lower offset last
        await orders.write([stream_context(15)])
        await orders.end()
        await orders.wait_finished()

        main = state.get_stream_state("shop", "main")
        assert main.stream_offset == 16
        assert main.schema_states["orders"].last_offset == 15
        assert main.schema_states["refunds"].last_offset == 16


class ListWriter(SinkWriter):
    def __init__(self, flush_size):
        super().__init__(flush_size=flush_size, name="list writer")
        self.groups = []

    async def write_records(self, records):
        self.groups.append([context.offset for context in records])


class Collector(PipelineStage):
    def __init__(self):
        super().__init__(name="collector")
        self.received = []

    async def transform(self, chunk):
        self.received.extend(chunk)


class TestSinkWriterDurability:

    async def test_only_last_record_of_each_group_is_forwarded(self):
        writer = ListWriter(flush_size=3)
        collector = Collector()
        writer.pipe(collector)
        collector.start()

        for offset in range(7):
            await writer.write([stream_context(offset)])
        await writer.end()
        await writer.wait_finished()
        await collector.wait_finished()

        assert writer.groups == [[0, 1, 2], [3, 4, 5], [6]]
        assert [context.offset for context in collector.received] == [2, 5, 6]
        assert writer.records_written == 7
        assert writer.groups_written == 3


class TestSinkStateStore:

    def test_save_and_load(self, tmp_path, key):
        store = SinkStateStore(str(tmp_path / "state"))
        state = SinkState(package_version="1.0.0")
        state.ensure_stream_state("shop", "main").update_hash = "h1"

        path = store.save_state(key, state)

        assert path.name == key.file_name()
        loaded = store.load_state(key)
        assert loaded.get_stream_state("shop", "main").update_hash == "h1"
        assert list((tmp_path / "state").glob("*.tmp")) == []

    def test_load_missing_returns_none(self, tmp_path, key):
        store = SinkStateStore(str(tmp_path))
        assert store.load_state(key) is None
        assert not store.exists(key)

    def test_clear(self, tmp_path, key):
        store = SinkStateStore(str(tmp_path))
        store.save_state(key, SinkState(package_version="1.0.0"))

        store.clear(key)

        assert not store.exists(key)


class TestNewRecordsAvailable:

    def _state(self, hashes):
        state = SinkState(package_version="1.0.0")
        for name, update_hash in hashes.items():
            state.ensure_stream_state("shop", name).update_hash = update_hash
        return state

    def test_no_prior_state(self):
        assert new_records_available(preview_with({"main": "h1"}), None)

    def test_all_hashes_match(self):
        state = self._state({"main": "h1", "other": "h2"})
        assert not new_records_available(preview_with({"main": "h1", "other": "h2"}), state)

    def test_one_hash_differs(self):
        state = self._state({"main": "h1", "other": "h2"})
        assert new_records_available(preview_with({"main": "h1", "other": "h3"}), state)

    def test_cleared_hash_means_new_records(self):
        state = self._state({"main": None})
        assert new_records_available(preview_with({"main": "h1"}), state)

    def test_source_without_hash(self):
        state = self._state({"main": "h1"})
        assert new_records_available(preview_with({"main": None}), state)

    def test_new_stream(self):
        state = self._state({"main": "h1"})
        assert new_records_available(preview_with({"main": "h1", "late": "h9"}), state)
