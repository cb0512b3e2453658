# ==============================================
# ObjectBatchingStage
# ==============================================
#
# PURPOSE:
#   Collect items into lists of at most `max_size` items.
#
# FLUSH RULES (whichever comes first):
#   1. The buffer holds max_size items → emit exactly max_size items
#   2. max_delay seconds have passed since the first item entered an
#      empty buffer → emit everything buffered
#   3. End of stream → emit everything buffered
#
#   Every flush cancels the pending timer. Items that remain after a
#   size flush start a new timer window.
#
# INPUT / OUTPUT:
#   write(item) or write([item, item, ...]) → push([item, ...])
#   Order is preserved; nothing is dropped or duplicated.
#
# ==============================================

from typing import Any, List

from recordflow.pipeline.stage import PipelineStage


class ObjectBatchingStage(PipelineStage):
    """Count- and time-bounded batching of arbitrary items."""

    def __init__(
        self,
        max_size: int = 100,
        max_delay: float = 1.0,
        name: str = "",
        max_pending: int = 16,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        super().__init__(name=name, max_pending=max_pending)
        self.max_size = max_size
        self.max_delay = max_delay
        self._buffer: List[Any] = []

    async def transform(self, chunk: Any) -> None:
        items = chunk if isinstance(chunk, list) else [chunk]
        if not items:
            return
        if not self._buffer:
            self.arm_timer(self.max_delay)
        self._buffer.extend(items)

        while len(self._buffer) >= self.max_size:
            batch = self._buffer[:self.max_size]
            self._buffer = self._buffer[self.max_size:]
            self.cancel_timer()
            await self.push(batch)

        if self._buffer and not self.timer_armed:
            self.arm_timer(self.max_delay)

    async def on_timer(self) -> None:
        await self._flush_buffer()

    async def flush(self) -> None:
        await self._flush_buffer()

    async def _flush_buffer(self) -> None:
        self.cancel_timer()
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        await self.push(batch)
