# ==============================================
# Fetch Progress
# ==============================================
#
# PURPOSE:
#   Status and throughput reporting for a fetch run.
#
# STATUS EVENTS (ResourceStatus):
#   { "resource": { "name": <stream set or stream>, "status": <FetchStatus> } }
#
#   PLANNING_OPERATIONS → OPENING_STREAM → READING_STREAM
#       ⇄ WAITING_TO_RECONNECT_TO_STREAM / RECONNECTING_TO_STREAM
#   → FLUSHING_FINAL_RECORDS → COMPLETED
#
# THROUGHPUT EVENTS (FetchStreamStatus):
#   bytes / records received vs expected, records committed, rates,
#   seconds remaining and percent complete. Percent and ETA use bytes
#   when every stream announced its size, records otherwise.
#
# CLASS: ProgressTracker (StreamCallbacks)
# ----------------------------------------
#   Receives the source's stream callbacks, turns them into status
#   events, and produces FetchStreamStatus snapshots on demand.
#
# ==============================================

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from recordflow.sources.base import StreamCallbacks


class FetchStatus(Enum):
    PLANNING_OPERATIONS = "Planning operations"
    OPENING_STREAM = "Opening stream"
    READING_STREAM = "Reading stream"
    READING_STREAM_WARNING = "Reading stream warning"
    CLOSING = "Closing"
    FLUSHING_FINAL_RECORDS = "Flushing final records"
    COMPLETED = "Completed"
    WAITING_TO_RECONNECT_TO_STREAM = "Waiting to reconnect to stream"
    RECONNECTING_TO_STREAM = "Reconnecting to stream"


@dataclass
class ResourceStatus:
    name: str
    status: FetchStatus

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {"resource": {"name": self.name, "status": self.status.name}}


@dataclass
class FetchStreamStatus:
    bytes_received: int = 0
    bytes_expected: Optional[int] = None
    records_received: int = 0
    records_expected: Optional[int] = None
    records_committed: int = 0
    records_per_second: float = 0.0
    bytes_per_second: Optional[float] = None
    seconds_remaining: Optional[int] = None
    percent_complete: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "bytesReceived": self.bytes_received,
            "bytesExpected": self.bytes_expected,
            "recordsReceived": self.records_received,
            "recordsExpected": self.records_expected,
            "recordsCommitted": self.records_committed,
            "recordsPerSecond": self.records_per_second,
            "bytesPerSecond": self.bytes_per_second,
            "secondsRemaining": self.seconds_remaining,
            "percentComplete": self.percent_complete,
        }


@dataclass
class _StreamProgress:
    expected_records: Optional[int] = None
    expected_bytes: Optional[int] = None
    bytes_received: int = 0


class ProgressTracker(StreamCallbacks):
    """Turns source callbacks into status events and throughput snapshots."""

    def __init__(
        self,
        on_status: Callable[[ResourceStatus], None],
        records_committed: Callable[[], int] = lambda: 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_status = on_status
        self.records_committed = records_committed
        self.clock = clock
        self.records_received = 0
        self.streams: Dict[str, _StreamProgress] = {}
        self.started_at = clock()

    def expect(self, stream_name: str, records: Optional[int], total_bytes: Optional[int]) -> None:
        """Seed expectations from the stream set preview."""
        progress = self.streams.setdefault(stream_name, _StreamProgress())
        if records is not None:
            progress.expected_records = records
        if total_bytes is not None:
            progress.expected_bytes = total_bytes

    # ======================================
    # StreamCallbacks
    # ======================================
    def starting_stream(self, stream_name, expected_record_count=None, expected_total_raw_bytes=None) -> None:
        self.expect(stream_name, expected_record_count, expected_total_raw_bytes)
        self.on_status(ResourceStatus(stream_name, FetchStatus.READING_STREAM))

    def waiting_to_reconnect(self, stream_name: str, delay_seconds: float) -> None:
        self.on_status(ResourceStatus(stream_name, FetchStatus.WAITING_TO_RECONNECT_TO_STREAM))

    def reconnecting(self, stream_name: str) -> None:
        self.on_status(ResourceStatus(stream_name, FetchStatus.RECONNECTING_TO_STREAM))

    def bytes_received(self, stream_name: str, byte_count: int) -> None:
        progress = self.streams.setdefault(stream_name, _StreamProgress())
        progress.bytes_received += byte_count

    def add_records(self, count: int) -> None:
        self.records_received += count

    # ======================================
    # Snapshot
    # ======================================
    def snapshot(self) -> FetchStreamStatus:
        elapsed = max(self.clock() - self.started_at, 1e-9)
        bytes_received = sum(p.bytes_received for p in self.streams.values())
        bytes_expected = _total([p.expected_bytes for p in self.streams.values()])
        records_expected = _total([p.expected_records for p in self.streams.values()])

        records_per_second = self.records_received / elapsed
        bytes_per_second = bytes_received / elapsed if bytes_received else None

        percent = None
        remaining = None
        if bytes_expected:
            percent = min(bytes_received / bytes_expected, 1.0) * 100
            if bytes_per_second:
                remaining = math.ceil(max(bytes_expected - bytes_received, 0) / bytes_per_second)
        elif records_expected:
            percent = min(self.records_received / records_expected, 1.0) * 100
            if records_per_second:
                remaining = math.ceil(
                    max(records_expected - self.records_received, 0) / records_per_second
                )

        return FetchStreamStatus(
            bytes_received=bytes_received,
            bytes_expected=bytes_expected,
            records_received=self.records_received,
            records_expected=records_expected,
            records_committed=self.records_committed(),
            records_per_second=records_per_second,
            bytes_per_second=bytes_per_second,
            seconds_remaining=remaining,
            percent_complete=percent,
        )


def _total(values) -> Optional[int]:
    # unknown when any stream did not announce a size
    if not values or any(value is None for value in values):
        return None
    return sum(values)
