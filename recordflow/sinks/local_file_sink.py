# ==============================================
# LocalFileSink ("local-file")
# ==============================================
#
# PURPOSE:
#   Write each schema to a JSON-lines file in a local directory.
#
# STAGING / COMMIT:
#   Writers never touch the target file. Each writer appends to a hidden
#   staging file next to it:
#       <directory>/.<schema>.jsonl.<run id>.partial
#   and reports {staging_path, target_path, append} as its commit key.
#   commit_after_writes then, for every key:
#       replace run → os.replace(staging, target)
#       append run  → copy staging onto the end of target, delete staging
#   and finally saves the SinkState through SinkStateStore
#   (<directory>/.recordflow-state/).
#
# CONFIGURATION:
#   configuration["directory"]  (required)
#   configuration["flush_size"] (optional, records per durable write)
#
# ==============================================

import asyncio
import json
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from recordflow.batching.object_batcher import ObjectBatchingStage
from recordflow.config import get_config
from recordflow.normalization.json_values import json_default
from recordflow.persistence.state_store import SinkStateStore
from recordflow.sources.base import RecordStreamContext, UpdateMethod
from .base import (
    CommitKey,
    Sink,
    SinkSupportedStreamOptions,
    SinkWriter,
    WriterContext,
    sanitize_name,
)


STATE_DIR_NAME = ".recordflow-state"


class JsonLinesWriter(SinkWriter):
    """Appends records to a JSON-lines file, fsync'ing every group."""

    def __init__(self, path: Path, flush_size: int = 100, name: str = "", max_pending: int = 16):
        super().__init__(flush_size=flush_size, name=name or path.name, max_pending=max_pending)
        self.path = path

    async def write_records(self, records: List[RecordStreamContext]) -> None:
        text = "".join(
            json.dumps(context.record, default=json_default) + "\n" for context in records
        )
        await asyncio.to_thread(self._append, text)

    async def complete(self) -> None:
        # An empty run still produces an (empty) file to promote
        await asyncio.to_thread(self._append, "")

    def _append(self, text: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())


class LocalFileSink(Sink):
    sink_type = "local-file"
    display_name = "Local JSON-lines files"
    required_configuration = [("configuration", "directory")]

    def is_strongly_typed(self, configuration: Dict[str, Any]) -> bool:
        return False

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
        directory = Path(configuration["directory"])
        directory.mkdir(parents=True, exist_ok=True)

        target = directory / f"{sanitize_name(schema.title)}.jsonl"
        staging = directory / f".{target.name}.{uuid.uuid4().hex[:12]}.partial"

        batching = get_config().batching
        flush_size = int(configuration.get("flush_size", batching.writer_flush_size))
        writer = JsonLinesWriter(staging, flush_size=flush_size, name=f"{schema.title} writer")

        commit_key: CommitKey = {
            "schema": schema.title,
            "staging_path": str(staging),
            "target_path": str(target),
            "append": not replace_existing_data,
        }

        return WriterContext(
            writer=writer,
            output_location=str(target),
            get_commit_keys=lambda: [commit_key],
            pre_stages=[
                ObjectBatchingStage(
                    max_size=batching.batch_size,
                    max_delay=batching.max_delay_seconds,
                    name=f"{schema.title} batching",
                )
            ],
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
        for key in commit_keys:
            await asyncio.to_thread(self._promote, key)
            job_context.print("SUCCESS", f"Committed {key['schema']} to {key['target_path']}")

        store = SinkStateStore(str(Path(configuration["directory"]) / STATE_DIR_NAME))
        await asyncio.to_thread(store.save_state, sink_state_key, sink_state)

    async def get_sink_state(
        self,
        connection_configuration,
        credentials_configuration,
        configuration,
        sink_state_key,
        job_context,
    ) -> Optional[Any]:
        store = SinkStateStore(str(Path(configuration["directory"]) / STATE_DIR_NAME))
        return await asyncio.to_thread(store.load_state, sink_state_key)

    @staticmethod
    def _promote(key: CommitKey) -> None:
        staging = Path(key["staging_path"])
        target = Path(key["target_path"])
        if not staging.exists():
            return
        if key.get("append") and target.exists():
            with open(staging, "rb") as src, open(target, "ab") as dst:
                shutil.copyfileobj(src, dst)
                dst.flush()
                os.fsync(dst.fileno())
            staging.unlink()
        else:
            os.replace(staging, target)
