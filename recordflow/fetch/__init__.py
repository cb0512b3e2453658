# ==============================================
# FETCH: SOURCE → SINK TRANSFERS
# ==============================================
#
# Modules:
# --------
# - orchestrator.py   → FetchJob / fetch(): plan, stream, flush, commit
# - source_pump.py    → SourcePump: streams → prepared record batches
# - schema_router.py  → SchemaRouter: one writer pipeline per schema
# - progress.py       → FetchStatus, ResourceStatus, FetchStreamStatus,
#                       ProgressTracker
#
# ==============================================

from .progress import FetchStatus, FetchStreamStatus, ProgressTracker, ResourceStatus
from .schema_router import SchemaPipeline, SchemaRouter
from .source_pump import SourcePump
from .orchestrator import FetchJob, FetchOutcome, FetchResult, fetch, new_records_available

__all__ = [
    "FetchStatus",
    "FetchStreamStatus",
    "ProgressTracker",
    "ResourceStatus",
    "SchemaPipeline",
    "SchemaRouter",
    "SourcePump",
    "FetchJob",
    "FetchOutcome",
    "FetchResult",
    "fetch",
    "new_records_available",
]
