# ==============================================
# SINKS
# ==============================================
#
# Destinations for records, all behind one contract (base.Sink).
#
# Modules:
# --------
# - base.py             → Sink, SinkWriter, WriterContext, supported options
# - state.py            → SinkState and its parts (persisted between runs)
# - state_tracker.py    → SinkStateTracker: records "safely written" offsets
# - registry.py         → sink type string → Sink
# - local_file_sink.py  → "local-file": JSON lines on disk
# - mysql_sink.py       → "mysql": typed tables via staging + RENAME TABLE
# - mongo_sink.py       → "mongo": collections via staging + rename
#
# Concrete sinks are not imported here; use registry.get_sink().
#
# ==============================================

from .base import (
    CommitKey,
    Sink,
    SinkSupportedStreamOptions,
    SinkWriter,
    WriterContext,
    sanitize_name,
)
from .state import SchemaState, SinkState, SinkStateKey, StreamSetState, StreamState
from .state_tracker import SinkStateTracker
from .registry import get_sink, sink_types

__all__ = [
    "CommitKey",
    "Sink",
    "SinkSupportedStreamOptions",
    "SinkWriter",
    "WriterContext",
    "sanitize_name",
    "SchemaState",
    "SinkState",
    "SinkStateKey",
    "StreamSetState",
    "StreamState",
    "SinkStateTracker",
    "get_sink",
    "sink_types",
]
