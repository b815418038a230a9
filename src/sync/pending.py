from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional

PENDING_UPDATE_TTL_S = float(os.getenv("PENDING_UPDATE_TTL_S", "5"))
SETTLE_GRACE_S = 2.0

PendingKind = Literal["create", "update", "delete"]


@dataclass
class PendingUpdate:
    id: str
    kind: PendingKind
    timestamp: float
    previous: Optional[Any] = None
    expires_at: Optional[float] = None


class PendingUpdates:
    """The view's own in-flight mutations, keyed by task id.

    Realtime events for these ids are echoes of our own writes and must not
    trigger a refetch. Entries disappear after ttl_s, or SETTLE_GRACE_S after
    the server confirmed the write.
    """

    def __init__(self, ttl_s: float = PENDING_UPDATE_TTL_S, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[str, PendingUpdate] = {}

    def track(self, task_id: str, kind: PendingKind, previous: Any = None) -> PendingUpdate:
        entry = PendingUpdate(id=task_id, kind=kind, timestamp=self._clock(), previous=previous)
        self._entries[task_id] = entry
        return entry

    def settle(self, task_id: str, grace_s: float = SETTLE_GRACE_S) -> None:
        entry = self._entries.get(task_id)
        if entry is not None:
            entry.expires_at = self._clock() + grace_s

    def discard(self, task_id: str) -> None:
        self._entries.pop(task_id, None)

    def prune(self) -> None:
        now = self._clock()
        stale = [
            k
            for k, e in self._entries.items()
            if now - e.timestamp > self.ttl_s or (e.expires_at is not None and now >= e.expires_at)
        ]
        for k in stale:
            del self._entries[k]

    def is_pending(self, task_id: Optional[str]) -> bool:
        if not task_id:
            return False
        self.prune()
        return task_id in self._entries

    def get(self, task_id: str) -> Optional[PendingUpdate]:
        self.prune()
        return self._entries.get(task_id)

    def __len__(self) -> int:
        self.prune()
        return len(self._entries)
