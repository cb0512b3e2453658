# ==============================================
# CLI — Command Line Entry Point
# ==============================================
#
# COMMANDS:
# ---------
# 1. Inspect a JSON-lines endpoint and write a package definition:
#    recordflow inspect http://127.0.0.1:8000/records --slug orders -o orders.json
#
# 2. Transfer the records into a sink:
#    recordflow fetch orders.json --url http://127.0.0.1:8000/records \
#        --sink local-file --directory out/
#    recordflow fetch orders.json --url ... --sink mysql     (MYSQL_* from .env)
#    recordflow fetch orders.json --url ... --sink mongo     (MONGO_* from .env)
#
# 3. Show (or clear) the stored state of a local-file transfer:
#    recordflow state orders --directory out/
#    recordflow state orders --directory out/ --clear
#
# Exit code 0 on success, 1 on any recordflow error, 130 when stopped
# with Ctrl+C before the transfer started.
#
# ==============================================

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from recordflow.analysis.schema import PackageDescriptor
from recordflow.analysis.schema_inspector import SchemaInspector, StatsStage
from recordflow.config import get_config
from recordflow.errors import ConfigurationError, RecordflowError
from recordflow.fetch.orchestrator import FetchJob, FetchOutcome
from recordflow.job_context import ConsoleJobContext
from recordflow.persistence.state_store import SinkStateStore
from recordflow.run_context import RunContext
from recordflow.sinks.local_file_sink import STATE_DIR_NAME
from recordflow.sinks.registry import get_sink, sink_types
from recordflow.sinks.state import SinkStateKey
from recordflow.sources.base import Source, UpdateMethod
from recordflow.sources.http_source import HttpSource


# ======================================
# inspect
# ======================================
async def inspect_source(
    source: Source,
    package_slug: str,
    run_context: RunContext,
    max_records: Optional[int] = None,
) -> PackageDescriptor:
    """
    Read a source once and infer its package definition.

    Args:
        source: Source to read
        package_slug: Slug of the resulting package
        run_context: Supplies the random source for content sampling
        max_records: Stop after this many records (None: read everything)
    """
    inspector = SchemaInspector(rng=run_context.rng)
    stage = StatsStage(inspector, name="inspect")
    preview = await source.get_stream_set_preview()

    seen = 0
    for summary in preview.stream_summaries:
        opened = await summary.open_stream(None, None)
        try:
            async for batch in opened.records:
                if max_records is not None:
                    batch = batch[:max(max_records - seen, 0)]
                if batch:
                    await stage.write(batch)
                    seen += len(batch)
                if max_records is not None and seen >= max_records:
                    break
        finally:
            close = getattr(opened.records, "aclose", None)
            if close is not None:
                await close()
        if max_records is not None and seen >= max_records:
            break

    await stage.end()
    await stage.wait_finished()
    return PackageDescriptor(slug=package_slug, schemas=inspector.schemas)


def cmd_inspect(args) -> int:
    source = HttpSource(
        slug=args.slug,
        url=args.url,
        schema_field=args.schema_field,
    )
    with RunContext.create(seed=args.seed) as run_context:
        package = asyncio.run(inspect_source(source, args.slug, run_context, args.max_records))

    output = Path(args.output or f"{args.slug}.json")
    with open(output, "w") as f:
        json.dump(package.to_dict(), f, indent=2)

    print(f"✓ Inspected {sum(s.record_count for s in package.schemas.values())} records")
    for slug, schema in package.schemas.items():
        print(f"   - {slug}: {len(schema.properties)} properties")
    print(f"✓ Package definition written to {output}")
    return 0


# ======================================
# fetch
# ======================================
def _sink_configurations(args) -> tuple:
    """(connection, credentials, configuration) for the chosen sink type."""
    config = get_config()
    configuration: Dict[str, Any] = json.loads(args.sink_config) if args.sink_config else {}

    if args.sink == "local-file":
        if args.directory:
            configuration["directory"] = args.directory
        return {}, {}, configuration
    if args.sink == "mysql":
        return config.mysql.as_connection(), config.mysql.as_credentials(), configuration
    if args.sink == "mongo":
        return config.mongo.as_connection(), config.mongo.as_credentials(), configuration
    raise ConfigurationError(f"Unknown sink type '{args.sink}'")


async def _run_fetch(job: FetchJob):
    job.install_signal_handlers()
    return await job.run()


def cmd_fetch(args) -> int:
    with open(args.package) as f:
        package = PackageDescriptor.from_dict(json.load(f))

    schema_slug = None
    if len(package.schemas) == 1:
        schema_slug = next(iter(package.schemas))
    elif not args.schema_field:
        raise ConfigurationError(
            "The package has several schemas: use --schema-field to name the record "
            "field that holds each record's schema"
        )

    source = HttpSource(
        slug=args.stream_set or package.slug,
        url=args.url or get_config().source_url,
        schema_slug=schema_slug,
        schema_field=args.schema_field,
        update_method=UpdateMethod(args.update_method),
    )
    connection, credentials, configuration = _sink_configurations(args)

    job_context = ConsoleJobContext(interactive=not args.defaults, show_progress=not args.quiet)
    with RunContext.create() as run_context:
        job = FetchJob(
            package,
            source,
            get_sink(args.sink),
            job_context,
            sink_connection_configuration=connection,
            sink_credentials_configuration=credentials,
            sink_configuration=configuration,
            catalog_slug=args.catalog,
            run_context=run_context,
            force_update=args.force_update,
        )
        result = asyncio.run(_run_fetch(job))

    if result.skipped:
        return 0
    if result.stopped_early:
        print("⚠ Received SIGINT, stopped early.")
    print(f"✓ Finished writing {result.records_committed:,} records")
    return 0 if result.outcome != FetchOutcome.FAILURE else 1


# ======================================
# state
# ======================================
def cmd_state(args) -> int:
    directory = Path(args.directory or ".")
    store = SinkStateStore(str(directory / STATE_DIR_NAME))
    key = SinkStateKey(args.catalog, args.package_slug, args.major_version)

    if args.clear:
        store.clear(key)
        return 0

    state = store.load_state(key)
    if state is None:
        print(f"⚠ No stored state for {key.as_string()}")
        return 1
    print(json.dumps(state.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recordflow",
        description="Infer schemas from record streams and transfer them into sinks.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect = subparsers.add_parser("inspect", help="Infer a package definition from a JSON-lines URL")
    inspect.add_argument("url", help="JSON-lines endpoint")
    inspect.add_argument("--slug", required=True, help="Package (and stream set) slug")
    inspect.add_argument("-o", "--output", help="Output file (default: <slug>.json)")
    inspect.add_argument("--schema-field", help="Record field naming each record's schema")
    inspect.add_argument("--max-records", type=int, help="Inspect at most this many records")
    inspect.add_argument("--seed", type=int, help="Seed for content label sampling")
    inspect.set_defaults(handler=cmd_inspect)

    fetch = subparsers.add_parser("fetch", help="Transfer records into a sink")
    fetch.add_argument("package", help="Package definition written by 'inspect'")
    fetch.add_argument("--url", help="JSON-lines endpoint (default: SOURCE_URL)")
    fetch.add_argument("--sink", required=True, choices=sink_types())
    fetch.add_argument("--directory", help="Output directory for the local-file sink")
    fetch.add_argument("--sink-config", help="Extra sink configuration as JSON")
    fetch.add_argument("--stream-set", help="Stream set slug (default: package slug)")
    fetch.add_argument("--schema-field", help="Record field naming each record's schema")
    fetch.add_argument(
        "--update-method",
        default=UpdateMethod.BATCH_FULL_SET.value,
        choices=[method.value for method in UpdateMethod],
    )
    fetch.add_argument("--catalog", default="local")
    fetch.add_argument("--force-update", action="store_true", help="Ignore stored state")
    fetch.add_argument("--defaults", action="store_true", help="Never prompt, use defaults")
    fetch.add_argument("--quiet", action="store_true", help="No progress output")
    fetch.set_defaults(handler=cmd_fetch)

    state = subparsers.add_parser("state", help="Show stored local-file sink state")
    state.add_argument("package_slug")
    state.add_argument("--directory", help="local-file sink directory")
    state.add_argument("--catalog", default="local")
    state.add_argument("--major-version", type=int, default=1)
    state.add_argument("--clear", action="store_true", help="Delete the stored state")
    state.set_defaults(handler=cmd_state)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except RecordflowError as e:
        print(f"✗ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⚠ Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
