# ==============================================
# BATCHING
# ==============================================
#
# Buffer items before forwarding them, to trade latency for throughput.
#
# Modules:
# --------
# - object_batcher.py → ObjectBatchingStage: flush on count OR on time
# - byte_batcher.py   → ByteBatcher / ByteBatchingStage: flush on size,
#                       split only after the last separator
#
# ==============================================

from .object_batcher import ObjectBatchingStage
from .byte_batcher import ByteBatcher, ByteBatchingStage

__all__ = ["ObjectBatchingStage", "ByteBatcher", "ByteBatchingStage"]
