# ==============================================
# PERSISTENCE
# ==============================================
#
# Sink state kept on disk across runs.
#
# Modules:
# --------
# - state_store.py → SinkStateStore: save / load / exists / clear
#
# ==============================================

from .state_store import SinkStateStore

__all__ = ["SinkStateStore"]
