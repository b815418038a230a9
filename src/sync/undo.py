from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from taskspace.errors import NotFoundError, UndoExpiredError

logger = logging.getLogger(__name__)

UNDO_WINDOW_S = float(os.getenv("UNDO_WINDOW_S", "3"))
# Expired actions are kept a while longer so late undo attempts report expiry
PURGE_AFTER_S = 60.0

UndoCallback = Callable[[], Awaitable[Any]]


@dataclass
class UndoAction:
    id: str
    user_id: str
    message: str
    deadline: float
    expires_at: datetime
    callback: UndoCallback = field(repr=False)

    def public(self) -> dict:
        return {
            "undo_id": self.id,
            "message": self.message,
            "expires_at": self.expires_at.isoformat(),
        }


class UndoManager:
    """Holds reversible actions for a short window after they happen.

    Each action can be undone once, by the user who caused it, until the
    window closes.
    """

    def __init__(self, window_s: float = UNDO_WINDOW_S, clock: Callable[[], float] = time.monotonic):
        self.window_s = window_s
        self._clock = clock
        self._actions: Dict[str, UndoAction] = {}

    def register(self, user_id: str, message: str, callback: UndoCallback) -> UndoAction:
        self.purge_expired()
        action = UndoAction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            message=message,
            deadline=self._clock() + self.window_s,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=self.window_s),
            callback=callback,
        )
        self._actions[action.id] = action
        logger.info(f"Registered undo {action.id} for user {user_id}: {message}")
        return action

    def get(self, user_id: str, action_id: str) -> Optional[UndoAction]:
        action = self._actions.get(action_id)
        if action is None or action.user_id != user_id:
            return None
        return action

    async def undo(self, user_id: str, action_id: str) -> Any:
        action = self.get(user_id, action_id)
        if action is None:
            raise NotFoundError(f"Undo action {action_id} not found")

        del self._actions[action_id]
        if self._clock() > action.deadline:
            raise UndoExpiredError()

        logger.info(f"Undoing {action_id}: {action.message}")
        return await action.callback()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, a in self._actions.items() if now > a.deadline + PURGE_AFTER_S]
        for k in expired:
            del self._actions[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._actions)
