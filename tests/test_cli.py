# ==============================================
# Tests for the command line entry point
# ==============================================

import pytest

from recordflow.analysis.schema import PackageDescriptor
from recordflow.cli import build_parser, inspect_source, main
from recordflow.persistence.state_store import SinkStateStore
from recordflow.run_context import RunContext
from recordflow.sinks.local_file_sink import STATE_DIR_NAME
from recordflow.sinks.state import SinkState, SinkStateKey
from recordflow.sources.memory_source import MemorySource


class TestParser:

    def test_inspect_arguments(self):
        args = build_parser().parse_args(["inspect", "http://x/records", "--slug", "orders", "--max-records", "50"])
        assert args.command == "inspect"
        assert args.max_records == 50

    def test_fetch_defaults(self):
        args = build_parser().parse_args(["fetch", "orders.json", "--sink", "local-file"])
        assert args.update_method == "BATCH_FULL_SET"
        assert args.catalog == "local"
        assert not args.force_update

    def test_unknown_sink_is_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["fetch", "orders.json", "--sink", "ftp"])


class TestStateCommand:

    def _save(self, tmp_path):
        store = SinkStateStore(str(tmp_path / STATE_DIR_NAME))
        state = SinkState(package_version="1.0.0")
        state.ensure_stream_state("orders", "orders").stream_offset = 9
        store.save_state(SinkStateKey("local", "orders", 1), state)
        return store

    def test_missing_state(self, tmp_path):
        assert main(["state", "orders", "--directory", str(tmp_path)]) == 1

    def test_prints_stored_state(self, tmp_path, capsys):
        self._save(tmp_path)

        assert main(["state", "orders", "--directory", str(tmp_path)]) == 0
        assert '"streamOffset": 9' in capsys.readouterr().out

    def test_clear(self, tmp_path):
        store = self._save(tmp_path)

        assert main(["state", "orders", "--directory", str(tmp_path), "--clear"]) == 0
        assert store.load_state(SinkStateKey("local", "orders", 1)) is None


class TestInspect:

    async def test_inspect_source_builds_package(self, sample_records):
        source = MemorySource("shop", {"main": sample_records}, schema_slug="orders")

        with RunContext.create(seed=1) as run_context:
            package = await inspect_source(source, "shop", run_context)

        assert isinstance(package, PackageDescriptor)
        assert package.slug == "shop"
        assert package.schemas["orders"].record_count == 5
        assert package.schemas["orders"].properties["order_id"].format == "integer"

    async def test_max_records(self, sample_records):
        source = MemorySource("shop", {"main": sample_records}, schema_slug="orders", batch_size=2)

        with RunContext.create(seed=1) as run_context:
            package = await inspect_source(source, "shop", run_context, max_records=3)

        assert package.schemas["orders"].record_count == 3
