# ==============================================
# PipelineStage
# ==============================================
#
# PURPOSE:
#   One step of an asynchronous record pipeline. Every stage owns a
#   bounded asyncio.Queue and a consumer task that processes queued
#   chunks strictly in order.
#
#       producer ──write()──▶ [ queue (bounded) ] ──▶ transform() ──push()──▶ next stage
#
# BACKPRESSURE:
#   write() suspends while the queue is full. A producer that awaits
#   write() therefore runs no faster than the slowest stage downstream,
#   which bounds memory by sink throughput instead of source throughput.
#
# END OF STREAM:
#   end() queues a marker. When the consumer reaches it, flush() runs,
#   the downstream stage is ended, and the stage reports finished.
#
# FAILURE:
#   If transform()/flush() raises, the stage stores the error, reports
#   finished (wait_finished() re-raises it), and keeps discarding queued
#   input until end-of-stream so producers blocked in write() are
#   released. The next write() raises the stored error.
#
# TIMER:
#   A stage may arm a one-shot timer (arm_timer). When it expires while
#   the consumer is idle, on_timer() runs on the consumer task, so timer
#   work never races with transform().
#
# SUBCLASS HOOKS:
#   - transform(chunk)   → process one chunk (call push() to forward)
#   - flush()            → end of stream, emit whatever is buffered
#   - on_timer()         → timer expired
#
# ==============================================

import asyncio
from typing import Any, Optional

_END_OF_STREAM = object()
_TIMER_EXPIRED = object()


class PipelineStage:
    """Bounded-queue asyncio stage."""

    def __init__(self, name: str = "", max_pending: int = 16):
        """
        Args:
            name: Label used in error messages
            max_pending: Chunks that may wait in the queue before write() blocks
        """
        self.name = name or type(self).__name__
        self.error: Optional[BaseException] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._downstream: Optional["PipelineStage"] = None
        self._task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self._ended = False
        self._deadline: Optional[float] = None

    # ======================================
    # Wiring
    # ======================================
    def pipe(self, downstream: "PipelineStage") -> "PipelineStage":
        """Forward this stage's output to `downstream`. Returns `downstream`."""
        self._downstream = downstream
        return downstream

    @property
    def downstream(self) -> Optional["PipelineStage"]:
        return self._downstream

    def start(self) -> "PipelineStage":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"stage:{self.name}"
            )
        return self

    # ======================================
    # Producer side
    # ======================================
    async def write(self, chunk: Any) -> None:
        """Queue a chunk, waiting while the queue is full."""
        if self.error is not None:
            raise self.error
        if self._ended:
            raise RuntimeError(f"Stage '{self.name}' received data after end()")
        self.start()
        await self._queue.put(chunk)

    async def end(self) -> None:
        """Signal end of stream. Buffered data is still flushed."""
        if self._ended:
            return
        self._ended = True
        self.start()
        await self._queue.put(_END_OF_STREAM)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def wait_finished(self) -> None:
        """Wait until the stage has flushed (or failed). Re-raises a failure."""
        await self._finished.wait()
        if self.error is not None:
            raise self.error

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._finished.set()

    # ======================================
    # Subclass hooks
    # ======================================
    async def transform(self, chunk: Any) -> None:
        await self.push(chunk)

    async def flush(self) -> None:
        pass

    async def on_timer(self) -> None:
        pass

    async def push(self, chunk: Any) -> None:
        """Hand a chunk to the downstream stage (no-op at the end of a pipeline)."""
        if self._downstream is not None:
            await self._downstream.write(chunk)

    def arm_timer(self, delay: float) -> None:
        self._deadline = asyncio.get_running_loop().time() + delay

    def cancel_timer(self) -> None:
        self._deadline = None

    @property
    def timer_armed(self) -> bool:
        return self._deadline is not None

    # ======================================
    # Consumer task
    # ======================================
    async def _run(self) -> None:
        reached_end = False
        try:
            while True:
                item = await self._next_item()
                if item is _TIMER_EXPIRED:
                    self._deadline = None
                    await self.on_timer()
                    continue
                if item is _END_OF_STREAM:
                    reached_end = True
                    self.cancel_timer()
                    await self.flush()
                    if self._downstream is not None:
                        await self._downstream.end()
                    break
                await self.transform(item)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error = exc
            self._finished.set()
            if not reached_end:
                await self._discard_until_end()
        finally:
            self._finished.set()

    async def _next_item(self) -> Any:
        if self._deadline is None or not self._queue.empty():
            return await self._queue.get()

        timeout = self._deadline - asyncio.get_running_loop().time()
        if timeout <= 0:
            return _TIMER_EXPIRED

        getter = asyncio.ensure_future(self._queue.get())
        done, _ = await asyncio.wait({getter}, timeout=timeout)
        if getter in done:
            return getter.result()
        # cancel() is False when the get completed in the meantime
        if not getter.cancel():
            return getter.result()
        return _TIMER_EXPIRED

    async def _discard_until_end(self) -> None:
        self._deadline = None
        while True:
            item = await self._queue.get()
            if item is _END_OF_STREAM:
                return
