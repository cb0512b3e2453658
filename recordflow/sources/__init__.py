# ==============================================
# SOURCES
# ==============================================
#
# Where records come from.
#
# Modules:
# --------
# - base.py           → Source contract, RecordContext, StreamSummary, ...
# - memory_source.py  → MemorySource: records already in memory
# - http_source.py    → HttpSource: JSON lines over HTTP (requests)
#
# ==============================================

from .base import (
    OpenedStream,
    RecordContext,
    RecordStreamContext,
    Source,
    StreamCallbacks,
    StreamSetPreview,
    StreamSetProcessingMethod,
    StreamSummary,
    UpdateMethod,
)
from .memory_source import MemorySource
from .http_source import HttpSource

__all__ = [
    "OpenedStream",
    "RecordContext",
    "RecordStreamContext",
    "Source",
    "StreamCallbacks",
    "StreamSetPreview",
    "StreamSetProcessingMethod",
    "StreamSummary",
    "UpdateMethod",
    "MemorySource",
    "HttpSource",
]
