# ==============================================
# RunContext
# ==============================================
#
# PURPOSE:
#   Everything that lives exactly as long as one run: an id, the start
#   time, the random source used by content sampling, and the set of
#   "tell the operator once" notices already printed.
#
# LIFECYCLE:
#   Created at run start with RunContext.create(seed=None), handed to the
#   components that need it, disposed at run end (close(), or leave the
#   `with` block).
#
#   with RunContext.create(seed=7) as run:
#       inspector = SchemaInspector(rng=run.rng)
#       if run.notice_once("append-fallback"):
#           print("⚠ ...")
#
# ==============================================

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Set


@dataclass
class RunContext:
    """State scoped to a single run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rng: random.Random = field(default_factory=random.Random)
    closed: bool = False
    _notices: Set[str] = field(default_factory=set, repr=False)

    @classmethod
    def create(cls, seed: Optional[int] = None) -> "RunContext":
        """
        Start a new run.

        Args:
            seed: Seed for the run's random source. None seeds from the OS.

        Returns:
            A fresh RunContext
        """
        return cls(rng=random.Random(seed))

    def notice_once(self, key: str) -> bool:
        """
        Return True the first time `key` is seen in this run, False after.
        """
        if key in self._notices:
            return False
        self._notices.add(key)
        return True

    def close(self) -> None:
        self._notices.clear()
        self.closed = True

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
