# ==============================================
# FetchJob: source → sink transfer
# ==============================================
#
# PURPOSE:
#   Move the records of one stream set from a Source into a Sink and
#   persist the state needed to resume the next run.
#
# FLOW (run):
#   1. Validate the sink configuration, load the prior SinkState and
#      skip the run when no stream changed (update hashes).
#   2. PLANNING_OPERATIONS: strongly typed sinks get one deconfliction
#      answer per conflicting property (cached in
#      sink_configuration["deconflict_options"]); the schemas are
#      rewritten before any writer opens.
#   3. OPENING_STREAM / READING_STREAM: SourcePump reads the streams into
#      the SchemaRouter, which opens a writer pipeline per schema on
#      first sight:
#          [pre-stages] ─▶ SinkWriter ─▶ SinkStateTracker(run SinkState)
#   4. FLUSHING_FINAL_RECORDS: end the router; every writer flushes.
#   5. Set each opened stream's updateHash (None when stopped early) and
#      call sink.commit_after_writes ONCE with every writer's commit keys.
#   6. COMPLETED.
#
# FAILURE:
#   Any writer / source error aborts the run before the commit: the
#   stored SinkState is left untouched. An error inside the commit raises
#   CommitError (data written, state not saved: operator must clean up and
#   re-run the full transfer).
#
# STOPPING:
#   request_stop() (SIGINT via install_signal_handlers) stops reading
#   after the current batch; buffered records are still flushed and
#   committed, but no stream keeps an updateHash.
#
# ==============================================

import asyncio
import copy
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from recordflow.analysis.deconflict import (
    OPTION_DESCRIPTIONS,
    DeconflictOption,
    DeconflictRule,
    build_deconflict_rules,
    find_type_conflicts,
    update_schema_with_deconflict_options,
)
from recordflow.analysis.schema import PackageDescriptor
from recordflow.config import get_config
from recordflow.errors import CommitError, SourceError
from recordflow.job_context import JobContext, Parameter, ParameterOption
from recordflow.run_context import RunContext
from recordflow.sinks.base import CommitKey, Sink
from recordflow.sinks.state import SinkState, SinkStateKey
from recordflow.sinks.state_tracker import SinkStateTracker
from recordflow.sources.base import Source, StreamSetPreview, UpdateMethod
from .progress import FetchStatus, FetchStreamStatus, ProgressTracker, ResourceStatus
from .schema_router import SchemaPipeline, SchemaRouter
from .source_pump import SourcePump


DECONFLICT_OPTIONS_KEY = "deconflict_options"

TRANSFER_FAILURE_MESSAGE = (
    "Transfer failed before the commit. Nothing was committed and the stored sink state "
    "was not changed."
)
COMMIT_FAILURE_MESSAGE = (
    "Error saving stream state after successfully writing records. The sink state is now "
    "inconsistent with the records written."
)


class FetchOutcome(Enum):
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    FAILURE = "FAILURE"


@dataclass
class FetchResult:
    outcome: FetchOutcome
    records_received: int = 0
    records_committed: int = 0
    stopped_early: bool = False
    skipped: bool = False
    sink_state: Optional[SinkState] = None
    commit_keys: List[CommitKey] = field(default_factory=list)


def new_records_available(preview: StreamSetPreview, sink_state: Optional[SinkState]) -> bool:
    """
    False only when every stream's update hash matches the stored one.
    """
    if sink_state is None:
        return True
    if not preview.stream_summaries:
        return True
    for summary in preview.stream_summaries:
        stream_state = sink_state.get_stream_state(preview.slug, summary.name)
        if stream_state is None:
            return True
        if stream_state.update_hash is None or summary.update_hash is None:
            return True
        if stream_state.update_hash != summary.update_hash:
            return True
    return False


class FetchJob:
    """One transfer of a package's stream set into a sink."""

    def __init__(
        self,
        package: PackageDescriptor,
        source: Source,
        sink: Sink,
        job_context: JobContext,
        sink_connection_configuration: Optional[Dict[str, Any]] = None,
        sink_credentials_configuration: Optional[Dict[str, Any]] = None,
        sink_configuration: Optional[Dict[str, Any]] = None,
        catalog_slug: str = "local",
        run_context: Optional[RunContext] = None,
        force_update: bool = False,
    ):
        """
        Args:
            package: Package definition (schemas are copied, not modified)
            source: Where records come from
            sink: Where records go
            job_context: Operator output and prompts
            sink_connection_configuration: Sink connection settings
            sink_credentials_configuration: Sink credentials
            sink_configuration: Sink settings; deconflict answers are
                cached here under "deconflict_options"
            catalog_slug: First part of the sink state key
            run_context: Run-scoped state (created when omitted)
            force_update: Ignore stored state and transfer everything
        """
        self.package = copy.deepcopy(package)
        self.source = source
        self.sink = sink
        self.job_context = job_context
        self.connection_configuration = sink_connection_configuration if sink_connection_configuration is not None else {}
        self.credentials_configuration = sink_credentials_configuration if sink_credentials_configuration is not None else {}
        self.sink_configuration = sink_configuration if sink_configuration is not None else {}
        self.catalog_slug = catalog_slug
        self.run_context = run_context or RunContext.create()
        self.force_update = force_update

        self.sink_state_key = SinkStateKey(catalog_slug, self.package.slug, self.package.major_version)
        self._stop = asyncio.Event()
        self._prior_state: Optional[SinkState] = None
        self._sink_state: Optional[SinkState] = None
        self._pump: Optional[SourcePump] = None
        self._router: Optional[SchemaRouter] = None
        self._tracker: Optional[ProgressTracker] = None

    # ======================================
    # Stopping
    # ======================================
    def request_stop(self) -> None:
        """Stop reading after the current batch; what was read is still written."""
        if self.run_context.notice_once("stop-requested"):
            self.job_context.print("WARN", "Stop requested, finishing the records already read.")
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT to request_stop (call from inside the running loop)."""
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_stop)
        except (NotImplementedError, RuntimeError):
            signal.signal(signal.SIGINT, lambda signum, frame: loop.call_soon_threadsafe(self.request_stop))

    # ======================================
    # Run
    # ======================================
    async def run(self) -> FetchResult:
        """
        Execute the transfer.

        Returns:
            FetchResult

        Raises:
            ConfigurationError, SinkConnectionError, SourceError,
            SchemaConflictError, WriteError, CommitError
        """
        try:
            return await self._run()
        finally:
            await self.sink.close()

    async def _run(self) -> FetchResult:
        self.sink.validate_configuration(
            self.connection_configuration, self.credentials_configuration, self.sink_configuration
        )

        preview = await self.source.get_stream_set_preview()

        prior = await self.sink.get_sink_state(
            self.connection_configuration,
            self.credentials_configuration,
            self.sink_configuration,
            self.sink_state_key,
            self.job_context,
        )
        if self.force_update:
            prior = None
        elif prior is not None and not new_records_available(preview, prior):
            message = (
                f"No new records available for {preview.slug}. "
                f"Use force_update to transfer anyway."
            )
            self.job_context.print("SUCCESS", message)
            self.job_context.finish(message, 0, FetchOutcome.SUCCESS)
            return FetchResult(outcome=FetchOutcome.SUCCESS, skipped=True, sink_state=prior)
        self._prior_state = prior

        self._set_status(preview.slug, FetchStatus.PLANNING_OPERATIONS)
        deconflict_rules = {}
        if self.sink.is_strongly_typed(self.sink_configuration):
            deconflict_rules = await self._plan_deconfliction()

        self._set_status(preview.slug, FetchStatus.OPENING_STREAM)
        self._announce_expected_totals(preview)

        # the run works on its own copy; the stored state changes only on commit
        self._sink_state = copy.deepcopy(prior) if prior is not None else SinkState(
            package_version=self.package.version
        )
        self._sink_state.package_version = self.package.version

        supported = self.sink.get_supported_stream_options(self.sink_configuration, prior)
        max_pending = get_config().batching.max_pending_chunks

        self._router = SchemaRouter(self._open_schema_writer, max_pending=max_pending)
        self._tracker = ProgressTracker(
            on_status=self.job_context.update_state,
            records_committed=lambda: self._router.records_written,
        )
        for summary in preview.stream_summaries:
            self._tracker.expect(summary.name, summary.expected_record_count, summary.expected_total_raw_bytes)

        self._pump = SourcePump(
            self.source,
            preview,
            self.package.schemas,
            prior,
            supported.update_methods,
            self._tracker,
            deconflict_rules=deconflict_rules,
            stop_event=self._stop,
            on_records=self._tracker.add_records,
        )

        progress_task = asyncio.get_running_loop().create_task(self._report_progress())
        try:
            await self._pump_records(preview)
        except Exception as e:
            self._router.cancel_all()
            self.job_context.finish(
                f"{TRANSFER_FAILURE_MESSAGE} Cause: {e}",
                self._tracker.records_received,
                FetchOutcome.FAILURE,
            )
            raise
        finally:
            progress_task.cancel()

        self.job_context.report_progress(self._tracker.snapshot())
        return await self._commit(preview)

    async def _pump_records(self, preview: StreamSetPreview) -> None:
        self._router.start()
        await self._pump.run(self._router)
        self._set_status(preview.slug, FetchStatus.FLUSHING_FINAL_RECORDS)
        await self._router.end()
        await self._router.wait_finished()

    async def _commit(self, preview: StreamSetPreview) -> FetchResult:
        stopped_early = self._pump.stopped_early
        for summary in preview.stream_summaries:
            if summary.name not in self._pump.opened_streams:
                continue
            stream_state = self._sink_state.ensure_stream_state(preview.slug, summary.name)
            stream_state.update_hash = None if stopped_early else summary.update_hash

        commit_keys = self._router.commit_keys()
        records = self._tracker.records_received
        self._set_status(preview.slug, FetchStatus.CLOSING)
        try:
            await self.sink.commit_after_writes(
                self.connection_configuration,
                self.credentials_configuration,
                self.sink_configuration,
                commit_keys,
                self.sink_state_key,
                self._sink_state,
                self.job_context,
            )
        except CommitError as e:
            # the sink already explains the failure and the remedy
            self.job_context.finish(str(e), records, FetchOutcome.FAILURE)
            raise
        except Exception as e:
            error = CommitError(f"{COMMIT_FAILURE_MESSAGE} Cause: {e}.")
            self.job_context.finish(str(error), records, FetchOutcome.FAILURE)
            raise error from e

        self._set_status(preview.slug, FetchStatus.COMPLETED)
        outcome = FetchOutcome.WARNING if stopped_early else FetchOutcome.SUCCESS
        message = "Stopped early" if stopped_early else "Success"
        self.job_context.finish(message, records, outcome)

        return FetchResult(
            outcome=outcome,
            records_received=records,
            records_committed=self._router.records_written,
            stopped_early=stopped_early,
            sink_state=self._sink_state,
            commit_keys=commit_keys,
        )

    # ======================================
    # Planning
    # ======================================
    async def _plan_deconfliction(self) -> Dict[str, Dict[str, DeconflictRule]]:
        """
        Resolve every type conflict of every schema, prompting once per
        property and caching the answer in the sink configuration.

        Returns:
            schema slug -> property -> rule
        """
        cached = self.sink_configuration.setdefault(DECONFLICT_OPTIONS_KEY, {})
        rules: Dict[str, Dict[str, DeconflictRule]] = {}

        for slug, schema in self.package.schemas.items():
            conflicts = find_type_conflicts(schema)
            if not conflicts:
                continue

            answers: Dict[str, Any] = {}
            for conflict in conflicts:
                title = conflict.property_title
                if cached.get(title) is not None:
                    # answers are cached per property title, shared by every schema
                    if self.run_context.notice_once(f"deconflict:{title}"):
                        self.job_context.print(
                            "INFO", f"Deconflicting property '{title}' by cached answer {cached[title]}"
                        )
                    answers[title] = cached[title]
                    continue

                parameter = Parameter(
                    name=title,
                    message=(
                        f"{title} has {' and '.join(conflict.value_types)} values. "
                        f"How should this conflict be handled?"
                    ),
                    options=[
                        ParameterOption(title=OPTION_DESCRIPTIONS[option], value=option.value)
                        for option in conflict.choices
                    ],
                    default=DeconflictOption.CAST_TO_STRING.value,
                )
                response = await self.job_context.prompt([parameter])
                answer = response[title]
                option = DeconflictOption(answer.value if isinstance(answer, DeconflictOption) else answer)
                answers[title] = option
                cached[title] = option.value

            schema_rules = build_deconflict_rules(schema, answers)
            update_schema_with_deconflict_options(schema, schema_rules)
            rules[slug] = schema_rules

        return rules

    async def _open_schema_writer(self, schema_slug: str) -> SchemaPipeline:
        schema = self.package.schemas.get(schema_slug)
        if schema is None:
            raise SourceError(f"Schema '{schema_slug}' is not part of package {self.package.slug}")

        update_method = self._pump.current_update_method
        replace_existing_data = (
            self._prior_state is None or update_method == UpdateMethod.BATCH_FULL_SET
        )
        writer_context = await self.sink.get_writer(
            schema,
            self.connection_configuration,
            self.credentials_configuration,
            self.sink_configuration,
            update_method,
            replace_existing_data,
            self.job_context,
        )

        stages = list(writer_context.pre_stages) + [
            writer_context.writer,
            SinkStateTracker(self._sink_state, name=f"{schema_slug} state"),
        ]
        for upstream, downstream in zip(stages, stages[1:]):
            upstream.pipe(downstream)
        for stage in stages:
            stage.start()

        self.job_context.print("INFO", f"Writing {schema_slug} to {writer_context.output_location}")
        return SchemaPipeline(schema_slug=schema_slug, writer_context=writer_context, stages=stages)

    # ======================================
    # Reporting
    # ======================================
    def _announce_expected_totals(self, preview: StreamSetPreview) -> None:
        records = preview.expected_records_total
        total_bytes = preview.expected_bytes_total
        if records is not None:
            self.job_context.print("INFO", f"Expecting {records:,} records from {preview.slug}")
        elif total_bytes is not None:
            self.job_context.print("INFO", f"Expecting {total_bytes:,} bytes from {preview.slug}")

    def _set_status(self, name: str, status: FetchStatus) -> None:
        self.job_context.update_state(ResourceStatus(name, status))

    async def _report_progress(self) -> None:
        interval = get_config().fetch.progress_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.job_context.report_progress(self._tracker.snapshot())

    @property
    def progress(self) -> Optional[FetchStreamStatus]:
        return self._tracker.snapshot() if self._tracker is not None else None


async def fetch(
    package: PackageDescriptor,
    source: Source,
    sink: Sink,
    job_context: JobContext,
    **kwargs: Any,
) -> FetchResult:
    """Run one FetchJob (see FetchJob.__init__ for the keyword arguments)."""
    job = FetchJob(package, source, sink, job_context, **kwargs)
    return await job.run()
