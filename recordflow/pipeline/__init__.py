# ==============================================
# PIPELINE
# ==============================================
#
# Bounded-queue stages that the batching stages, sink writers, the state
# tracker and the fetch demultiplexer are all built on.
#
# Modules:
# --------
# - stage.py → PipelineStage (queue + consumer task + optional timer)
#
# ==============================================

from .stage import PipelineStage

__all__ = ["PipelineStage"]
