# ==============================================
# Tests for the fetch orchestrator
# ==============================================
#
# All tests run against MemorySource and the in-memory sink from
# conftest.py, so nothing here needs a database.
# ==============================================

import pytest

from recordflow.errors import CommitError, ConfigurationError, WriteError
from recordflow.fetch.orchestrator import (
    DECONFLICT_OPTIONS_KEY,
    FetchJob,
    FetchOutcome,
    fetch,
)
from recordflow.fetch.progress import FetchStatus
from recordflow.job_context import HeadlessJobContext
from recordflow.sources.base import RecordContext, UpdateMethod
from recordflow.sources.memory_source import MemorySource


def three_schema_records():
    records = []
    for i in range(6):
        for slug in ("orders", "refunds", "customers"):
            records.append(RecordContext(record={"id": i, "kind": slug}, schema_slug=slug))
    return records


@pytest.fixture
def three_schema_package(make_package):
    by_schema = {}
    for context in three_schema_records():
        by_schema.setdefault(context.schema_slug, []).append(context.record)
    return make_package("shop", by_schema)


class StopWhileReading(HeadlessJobContext):
    """Requests a stop as soon as the first stream starts reading."""

    job = None

    def update_state(self, resource_status):
        super().update_state(resource_status)
        if resource_status.status == FetchStatus.READING_STREAM and self.job is not None:
            self.job.request_stop()


class TestCommit:

    async def test_single_commit_with_every_writers_keys(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})

        result = await fetch(three_schema_package, source, memory_sink, job_context)

        assert result.outcome == FetchOutcome.SUCCESS
        assert len(memory_sink.commits) == 1
        assert len(memory_sink.commits[0]) == 6
        assert {key["schema"] for key in memory_sink.commits[0]} == {"orders", "refunds", "customers"}
        assert result.records_received == 18
        assert result.records_committed == 18
        assert memory_sink.closed

    async def test_records_keep_order_per_schema(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()}, batch_size=4)

        await fetch(three_schema_package, source, memory_sink, job_context)

        assert [record["id"] for record in memory_sink.written["orders"]] == list(range(6))

    async def test_state_records_hash_and_offset(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})
        preview = await source.get_stream_set_preview()

        await fetch(three_schema_package, source, memory_sink, job_context)

        stream = memory_sink.stored_state.get_stream_state("shop", "main")
        assert stream.update_hash == preview.stream_summaries[0].update_hash
        assert stream.schema_states["orders"].last_offset == 15
        assert stream.schema_states["refunds"].last_offset == 16
        assert stream.schema_states["customers"].last_offset == 17
        assert stream.stream_offset == 17

    async def test_slow_schema_does_not_pull_stream_offset_back(self, three_schema_package, sink_factory, job_context):
        sink = sink_factory(write_delays={"orders": 0.02})
        source = MemorySource("shop", {"main": three_schema_records()})

        await fetch(three_schema_package, source, sink, job_context)

        stream = sink.stored_state.get_stream_state("shop", "main")
        assert stream.schema_states["orders"].last_offset == 15
        assert stream.stream_offset == 17

    async def test_status_sequence(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})

        await fetch(three_schema_package, source, memory_sink, job_context)

        statuses = [status.status for status in job_context.states]
        assert statuses[0] == FetchStatus.PLANNING_OPERATIONS
        assert statuses[-1] == FetchStatus.COMPLETED
        assert statuses.index(FetchStatus.FLUSHING_FINAL_RECORDS) < statuses.index(FetchStatus.CLOSING)
        assert job_context.finished[2] == FetchOutcome.SUCCESS

    async def test_expected_record_total_is_announced(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})

        await fetch(three_schema_package, source, memory_sink, job_context)

        assert ("INFO", "Expecting 18 records from shop") in job_context.messages


class TestFailures:

    async def test_write_failure_commits_nothing(self, three_schema_package, sink_factory, job_context):
        sink = sink_factory()
        source = MemorySource("shop", {"main": three_schema_records()})
        await fetch(three_schema_package, source, sink, job_context)
        prior = sink.stored_state

        sink.fail_writes = True
        with pytest.raises(WriteError):
            await fetch(three_schema_package, source, sink, job_context, force_update=True)

        assert len(sink.commits) == 1
        assert sink.stored_state.to_dict() == prior.to_dict()
        assert job_context.finished[2] == FetchOutcome.FAILURE
        assert "disk full" in job_context.finished[0]
        assert sink.closed

    async def test_commit_failure_raises_commit_error(self, three_schema_package, sink_factory, job_context):
        sink = sink_factory(fail_commit=True)
        source = MemorySource("shop", {"main": three_schema_records()})

        with pytest.raises(CommitError) as excinfo:
            await fetch(three_schema_package, source, sink, job_context)

        assert "re-run the full transfer" in str(excinfo.value)
        assert sink.stored_state is None
        assert "state table is read-only" in job_context.finished[0]

    async def test_commit_error_from_sink_is_not_wrapped(self, three_schema_package, memory_sink, job_context):
        async def refuse(*args):
            raise CommitError("Table orders has no column(s) amount for the appended records.")

        memory_sink.commit_after_writes = refuse
        source = MemorySource("shop", {"main": three_schema_records()})

        with pytest.raises(CommitError) as excinfo:
            await fetch(three_schema_package, source, memory_sink, job_context)

        message = str(excinfo.value)
        assert message.startswith("Table orders has no column(s) amount")
        assert message.count(CommitError.REMEDY) == 1
        assert job_context.finished == (message, 18, FetchOutcome.FAILURE)

    async def test_missing_configuration(self, three_schema_package, sink_factory, job_context):
        sink = sink_factory()
        sink.required_configuration = [("configuration", "directory")]
        source = MemorySource("shop", {"main": three_schema_records()})

        with pytest.raises(ConfigurationError, match="configuration.directory"):
            await fetch(three_schema_package, source, sink, job_context)

    async def test_unsupported_update_method(self, make_package, sink_factory, job_context):
        sink = sink_factory()
        package = make_package("shop", {"records": [{"id": 1}]})
        source = MemorySource("shop", {"main": [{"id": 1}]}, update_method=UpdateMethod.CONTINUOUS)

        with pytest.raises(ConfigurationError, match="CONTINUOUS"):
            await fetch(package, source, sink, job_context)

        assert job_context.finished[2] == FetchOutcome.FAILURE
        assert "CONTINUOUS" in job_context.finished[0]
        assert "writing" not in job_context.finished[0]


class TestIncrementalRuns:

    async def test_unchanged_source_is_skipped(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})
        await fetch(three_schema_package, source, memory_sink, job_context)

        result = await fetch(three_schema_package, source, memory_sink, job_context)

        assert result.skipped
        assert result.outcome == FetchOutcome.SUCCESS
        assert len(memory_sink.commits) == 1

    async def test_force_update_transfers_again(self, three_schema_package, memory_sink, job_context):
        source = MemorySource("shop", {"main": three_schema_records()})
        await fetch(three_schema_package, source, memory_sink, job_context)

        result = await fetch(three_schema_package, source, memory_sink, job_context, force_update=True)

        assert not result.skipped
        assert len(memory_sink.commits) == 2
        # force_update ignores the prior state, so the data is replaced
        assert all(replace for _, _, replace in memory_sink.writer_requests)

    async def test_append_only_log_resumes_after_stored_offset(self, make_package, memory_sink, job_context):
        package = make_package("log", {"records": [{"n": i} for i in range(5)]})
        first = MemorySource("log", {"main": [{"n": i} for i in range(3)]},
                             update_method=UpdateMethod.APPEND_ONLY_LOG)
        await fetch(package, first, memory_sink, job_context)

        second = MemorySource("log", {"main": [{"n": i} for i in range(5)]},
                              update_method=UpdateMethod.APPEND_ONLY_LOG)
        result = await fetch(package, second, memory_sink, job_context)

        assert result.records_committed == 2
        assert [record["n"] for record in memory_sink.written["records"]] == [0, 1, 2, 3, 4]
        assert memory_sink.writer_requests[0][1:] == (UpdateMethod.BATCH_FULL_SET, True)
        assert memory_sink.writer_requests[1][1:] == (UpdateMethod.APPEND_ONLY_LOG, False)
        assert memory_sink.stored_state.get_stream_state("log", "main").stream_offset == 4

    async def test_multi_schema_resume_writes_no_duplicates(self, three_schema_package, sink_factory, job_context):
        sink = sink_factory(write_delays={"orders": 0.02})
        first = MemorySource("shop", {"main": three_schema_records()},
                             update_method=UpdateMethod.APPEND_ONLY_LOG)
        await fetch(three_schema_package, first, sink, job_context)

        more = three_schema_records() + [
            RecordContext(record={"id": 6, "kind": slug}, schema_slug=slug)
            for slug in ("orders", "refunds", "customers")
        ]
        second = MemorySource("shop", {"main": more}, update_method=UpdateMethod.APPEND_ONLY_LOG)
        result = await fetch(three_schema_package, second, sink, job_context)

        assert result.records_committed == 3
        for slug in ("orders", "refunds", "customers"):
            assert [record["id"] for record in sink.written[slug]] == list(range(7))


class TestStopEarly:

    async def test_stop_clears_update_hash(self, three_schema_package, memory_sink):
        job_context = StopWhileReading()
        source = MemorySource("shop", {"main": three_schema_records()}, batch_size=3)
        job = FetchJob(three_schema_package, source, memory_sink, job_context)
        job_context.job = job

        result = await job.run()

        assert result.stopped_early
        assert result.outcome == FetchOutcome.WARNING
        assert result.records_received == 3
        assert len(memory_sink.commits) == 1
        stream = memory_sink.stored_state.get_stream_state("shop", "main")
        assert stream.update_hash is None
        assert stream.schema_states["customers"].last_offset == 2
        assert "orders" in stream.schema_states

    async def test_repeated_stop_requests_warn_once(self, three_schema_package, memory_sink, job_context):
        job = FetchJob(three_schema_package, MemorySource("shop", {"main": []}), memory_sink, job_context)

        job.request_stop()
        job.request_stop()

        warnings = [message for level, message in job_context.messages if level == "WARN"]
        assert warnings == ["Stop requested, finishing the records already read."]

    async def test_stopped_run_is_not_skipped_next_time(self, three_schema_package, memory_sink):
        job_context = StopWhileReading()
        source = MemorySource("shop", {"main": three_schema_records()}, batch_size=3)
        job = FetchJob(three_schema_package, source, memory_sink, job_context)
        job_context.job = job
        await job.run()

        result = await fetch(three_schema_package, source, memory_sink, HeadlessJobContext())

        assert not result.skipped
        assert not result.stopped_early


class TestDeconfliction:

    @pytest.fixture
    def conflicting_package(self, make_package):
        return make_package("shop", {"records": [{"amount": 5}, {"amount": 7}, {"amount": "n/a"}]})

    def _source(self):
        return MemorySource("shop", {"main": [{"amount": 5}, {"amount": 7}, {"amount": "n/a"}]})

    async def test_answer_is_applied_and_cached(self, conflicting_package, sink_factory):
        sink = sink_factory(strongly_typed=True)
        job_context = HeadlessJobContext(answers={"amount": "CAST_TO_STRING"})
        configuration = {}

        await fetch(conflicting_package, self._source(), sink, job_context,
                    sink_configuration=configuration)

        assert len(job_context.prompts) == 1
        assert job_context.prompts[0].name == "amount"
        assert configuration[DECONFLICT_OPTIONS_KEY] == {"amount": "CAST_TO_STRING"}
        assert [record["amount"] for record in sink.written["records"]] == ["5", "7", "n/a"]

    async def test_cached_answer_is_not_asked_again(self, conflicting_package, sink_factory):
        sink = sink_factory(strongly_typed=True)
        job_context = HeadlessJobContext()
        configuration = {DECONFLICT_OPTIONS_KEY: {"amount": "SKIP"}}

        result = await fetch(conflicting_package, self._source(), sink, job_context,
                             sink_configuration=configuration)

        assert job_context.prompts == []
        assert [record["amount"] for record in sink.written["records"]] == [5, 7]
        assert result.records_committed == 2

    async def test_cached_answer_is_announced_once_per_property(self, make_package, sink_factory):
        conflicting = [{"amount": 5}, {"amount": 7}, {"amount": "n/a"}]
        package = make_package("shop", {"records": conflicting, "refunds": conflicting})
        job_context = HeadlessJobContext()
        configuration = {DECONFLICT_OPTIONS_KEY: {"amount": "CAST_TO_STRING"}}

        await fetch(package, self._source(), sink_factory(strongly_typed=True), job_context,
                    sink_configuration=configuration)

        notices = [message for _, message in job_context.messages if "cached answer" in message]
        assert notices == ["Deconflicting property 'amount' by cached answer CAST_TO_STRING"]

    async def test_package_is_not_modified(self, conflicting_package, sink_factory):
        sink = sink_factory(strongly_typed=True)

        await fetch(conflicting_package, self._source(), sink, HeadlessJobContext())

        assert conflicting_package.schemas["records"].properties["amount"].format == "integer,string"

    async def test_weakly_typed_sink_is_never_asked(self, conflicting_package, sink_factory):
        sink = sink_factory()
        job_context = HeadlessJobContext()

        await fetch(conflicting_package, self._source(), sink, job_context)

        assert job_context.prompts == []
        assert [record["amount"] for record in sink.written["records"]] == [5, 7, "n/a"]


class TestHiddenAndRenamedProperties:

    async def test_hidden_dropped_and_renamed_written_under_title(self, make_package, memory_sink, job_context):
        package = make_package("shop", {"records": [{"id": 1, "ssn": "123-45-6789", "nm": "Ana"}]})
        properties = package.schemas["records"].properties
        properties["ssn"].hidden = True
        properties["nm"].title = "name"
        source = MemorySource("shop", {"main": [{"id": 1, "ssn": "123-45-6789", "nm": "Ana"}]})

        await fetch(package, source, memory_sink, job_context)

        assert memory_sink.written["records"] == [{"id": 1, "name": "Ana"}]
