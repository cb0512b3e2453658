import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from recordflow.sinks.state import SinkState, SinkStateKey


# ==============================================
# SinkStateStore
# ==============================================
#
# PURPOSE:
#   Persist SinkState to disk so the next run can resume where the last
#   committed run stopped. Used by sinks that have no database of their
#   own to keep state in (the local-file sink).
#
# FILES:
#   <storage_dir>/<catalog>__<package>__v<major>.json   → one per state key
#
# WRITES ARE ATOMIC:
#   The state is written to a temp file in the same directory and moved
#   over the old file with os.replace, so a crash leaves either the old
#   or the new state, never half a file.
#
class SinkStateStore:
    """
    Handles persistence of sink state to disk.
    """

    def __init__(self, storage_dir: str = "state/"):
        """
        Initialize the state store.

        Args:
            storage_dir: Directory to store state files
        """
        self.storage_dir = Path(storage_dir)

        # Create directory if it doesn't exist
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: SinkStateKey) -> Path:
        return self.storage_dir / key.file_name()

    def save_state(self, key: SinkStateKey, state: SinkState) -> Path:
        """
        Save sink state to disk.

        Args:
            key: Which package the state belongs to
            state: The state to store

        Returns:
            Path of the written file
        """
        target = self._path(key)
        fd, temp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, target)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

        print(f"✓ Saved sink state for {key.as_string()} to {target}")
        return target

    def load_state(self, key: SinkStateKey) -> Optional[SinkState]:
        """
        Load sink state from disk.

        Returns:
            The stored SinkState, or None if nothing was stored yet
        """
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return SinkState.from_dict(json.load(f))

    def exists(self, key: SinkStateKey) -> bool:
        return self._path(key).exists()

    def clear(self, key: SinkStateKey) -> None:
        """Delete the stored state (forces a full transfer next run)."""
        path = self._path(key)
        if path.exists():
            path.unlink()
            print(f"✓ Cleared sink state for {key.as_string()}")
