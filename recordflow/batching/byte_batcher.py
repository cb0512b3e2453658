# ==============================================
# ByteBatcher / ByteBatchingStage
# ==============================================
#
# PURPOSE:
#   Regroup an arbitrary stream of byte chunks into larger chunks that
#   always end right after a separator (e.g. b"\n" for JSON lines), so a
#   downstream parser never sees half a record.
#
# RULES:
#   - Incoming bytes are appended to a buffer.
#   - Once the buffer holds >= max_size bytes, everything up to and
#     including the LAST separator is emitted; the rest is kept.
#   - If the buffer has no separator yet, nothing is emitted (the buffer
#     keeps growing until one arrives or the stream ends).
#   - flush() returns everything left, separator or not.
#
#   Concatenating all emitted chunks reproduces the input exactly.
#
# ByteBatcher is the synchronous core (used directly by sources that
# already own their read loop); ByteBatchingStage wraps it as a stage.
#
# ==============================================

from typing import List

from recordflow.pipeline.stage import PipelineStage


class ByteBatcher:
    """Size-bounded byte regrouping that only splits after a separator."""

    def __init__(self, max_size: int = 1024 * 1024, separator: bytes = b"\n"):
        if not separator:
            raise ValueError("separator must not be empty")
        self.max_size = max_size
        self.separator = separator
        self._buffer = bytearray()

    def push(self, chunk: bytes) -> List[bytes]:
        """
        Add bytes to the buffer.

        Returns:
            Zero or one complete chunks ready to forward
        """
        self._buffer.extend(chunk)
        if len(self._buffer) < self.max_size:
            return []

        boundary = self._buffer.rfind(self.separator)
        if boundary == -1:
            return []

        cut = boundary + len(self.separator)
        ready = bytes(self._buffer[:cut])
        del self._buffer[:cut]
        return [ready]

    def flush(self) -> bytes:
        remaining = bytes(self._buffer)
        self._buffer.clear()
        return remaining

    @property
    def buffered(self) -> int:
        return len(self._buffer)


class ByteBatchingStage(PipelineStage):
    """PipelineStage wrapper around ByteBatcher."""

    def __init__(
        self,
        max_size: int = 1024 * 1024,
        separator: bytes = b"\n",
        name: str = "",
        max_pending: int = 16,
    ):
        super().__init__(name=name, max_pending=max_pending)
        self._batcher = ByteBatcher(max_size=max_size, separator=separator)

    async def transform(self, chunk: bytes) -> None:
        for ready in self._batcher.push(chunk):
            await self.push(ready)

    async def flush(self) -> None:
        remaining = self._batcher.flush()
        if remaining:
            await self.push(remaining)
