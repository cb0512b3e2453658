# ==============================================
# HttpSource
# ==============================================
#
# PURPOSE:
#   Read JSON-lines (one JSON object per line) from an HTTP endpoint as a
#   single-stream stream set.
#
# FLOW:
#   requests.get(stream=True) ──iter_content──▶ ByteBatcher(separator=b"\n")
#       ──▶ complete lines ──json.loads──▶ RecordContext batches
#
#   The blocking requests calls run in worker threads so the event loop
#   keeps driving the sink pipelines while the next chunk downloads.
#
# OFFSETS:
#   A record's offset is its 0-based line number in the response body.
#
# UPDATE HASH:
#   ETag, else Last-Modified, from a HEAD request. Without either header
#   the hash is None and every run transfers the stream again.
#
# RECONNECTS:
#   When the connection drops mid-body the source reports
#   waiting_to_reconnect / reconnecting, waits, requests the body again
#   and skips the lines it already emitted. After
#   FetchConfig.reconnect_attempts failed attempts it gives up with
#   SinkConnectionError.
#
# ==============================================

import asyncio
import hashlib
import json
from typing import AsyncIterator, Dict, List, Optional

import requests

from recordflow.batching.byte_batcher import ByteBatcher
from recordflow.config import FetchConfig, get_config
from recordflow.errors import SinkConnectionError, SourceError
from .base import (
    OpenedStream,
    RecordContext,
    Source,
    StreamCallbacks,
    StreamSetPreview,
    StreamSummary,
    UpdateMethod,
)


CHUNK_SIZE = 64 * 1024


class HttpSource(Source):
    source_type = "http"

    def __init__(
        self,
        slug: str,
        url: str,
        schema_slug: Optional[str] = None,
        schema_field: Optional[str] = None,
        update_method: UpdateMethod = UpdateMethod.BATCH_FULL_SET,
        headers: Optional[Dict[str, str]] = None,
        batch_size: int = 100,
        byte_batch_size: Optional[int] = None,
        fetch_config: Optional[FetchConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            slug: Stream set slug (also the stream name)
            url: JSON-lines endpoint
            schema_slug: Schema for every record (defaults to `slug`)
            schema_field: Record field naming the schema, when records of
                several schemas share the stream
            update_method: Update method reported for the stream
            headers: Extra request headers
            batch_size: Records per emitted batch
            byte_batch_size: Bytes buffered before lines are split out
            fetch_config: Timeouts and reconnect policy
            session: requests session to use (one is created otherwise)
        """
        super().__init__(slug)
        config = get_config()
        self.url = url
        self.schema_slug = schema_slug or slug
        self.schema_field = schema_field
        self.update_method = update_method
        self.headers = headers or {}
        self.batch_size = batch_size
        self.byte_batch_size = byte_batch_size or config.batching.byte_batch_size
        self.fetch_config = fetch_config or config.fetch
        self.session = session or requests.Session()

    # ======================================
    # Preview
    # ======================================
    async def get_stream_set_preview(self) -> StreamSetPreview:
        try:
            response = await asyncio.to_thread(
                self.session.head,
                self.url,
                headers=self.headers,
                timeout=self.fetch_config.request_timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            raise SinkConnectionError(f"Could not reach {self.url}: {e}") from e

        update_hash = None
        expected_bytes = None
        if response.ok:
            validator = response.headers.get("ETag") or response.headers.get("Last-Modified")
            if validator:
                update_hash = hashlib.sha256(f"{self.url}|{validator}".encode("utf-8")).hexdigest()
            length = response.headers.get("Content-Length")
            if length and length.isdigit():
                expected_bytes = int(length)

        summary = StreamSummary(
            name=self.slug,
            open_stream=self.open_stream,
            update_method=self.update_method,
            update_hash=update_hash,
            expected_total_raw_bytes=expected_bytes,
        )
        return StreamSetPreview(slug=self.slug, stream_summaries=[summary], update_hash=update_hash)

    async def open_stream(self, stream_state, callbacks: Optional[StreamCallbacks] = None) -> OpenedStream:
        return OpenedStream(records=self._read(callbacks or StreamCallbacks()))

    # ======================================
    # Reading
    # ======================================
    def _get(self) -> requests.Response:
        response = self.session.get(
            self.url,
            headers=self.headers,
            stream=True,
            timeout=self.fetch_config.request_timeout_seconds,
        )
        response.raise_for_status()
        return response

    async def _read(self, callbacks: StreamCallbacks) -> AsyncIterator[List[RecordContext]]:
        name = self.slug
        emitted_lines = 0
        failed_attempts = 0

        while True:
            response = None
            try:
                response = await asyncio.to_thread(self._get)
                chunks = response.iter_content(chunk_size=CHUNK_SIZE)
                batcher = ByteBatcher(self.byte_batch_size, b"\n")
                line_number = 0
                pending: List[RecordContext] = []

                while True:
                    chunk = await asyncio.to_thread(next, chunks, None)
                    if chunk is None:
                        break
                    if not chunk:
                        continue
                    callbacks.bytes_received(name, len(chunk))
                    for block in batcher.push(chunk):
                        for line in _split_lines(block):
                            if line_number >= emitted_lines:
                                context = self._parse_line(line, line_number)
                                if context is not None:
                                    pending.append(context)
                            line_number += 1
                    # lines are only counted as emitted once yielded
                    while len(pending) >= self.batch_size:
                        batch, pending = pending[:self.batch_size], pending[self.batch_size:]
                        emitted_lines = batch[-1].offset + 1
                        yield batch

                for line in _split_lines(batcher.flush()):
                    if line_number >= emitted_lines:
                        context = self._parse_line(line, line_number)
                        if context is not None:
                            pending.append(context)
                    line_number += 1

                while pending:
                    batch, pending = pending[:self.batch_size], pending[self.batch_size:]
                    yield batch
                return

            except requests.HTTPError as e:
                # the server answered: reconnecting will not help
                raise SinkConnectionError(f"{self.url} returned an error: {e}") from e
            except requests.RequestException as e:
                failed_attempts += 1
                if failed_attempts > self.fetch_config.reconnect_attempts:
                    raise SinkConnectionError(
                        f"Lost connection to {self.url} after {failed_attempts} attempts: {e}"
                    ) from e
                delay = self.fetch_config.reconnect_delay_seconds
                callbacks.waiting_to_reconnect(name, delay)
                await asyncio.sleep(delay)
                callbacks.reconnecting(name)
            finally:
                if response is not None:
                    response.close()

    def _parse_line(self, line: bytes, line_number: int) -> Optional[RecordContext]:
        text = line.strip()
        if not text:
            return None
        try:
            record = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SourceError(f"{self.url}: line {line_number + 1} is not valid JSON: {e}") from e
        if not isinstance(record, dict):
            raise SourceError(f"{self.url}: line {line_number + 1} is not a JSON object")

        schema_slug = self.schema_slug
        if self.schema_field and record.get(self.schema_field) not in (None, ""):
            schema_slug = str(record[self.schema_field])
        return RecordContext(record=record, schema_slug=schema_slug, offset=line_number)


def _split_lines(block: bytes) -> List[bytes]:
    lines = block.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()
    return lines
