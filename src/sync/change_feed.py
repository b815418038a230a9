"""
Row change fan-out for realtime sync.

Every insert, update and delete on tasks, workspaces and tags is published as
a ChangeEvent. Subscribers get their own asyncio queue filtered by user and
table; a slow subscriber drops its oldest events instead of blocking the
publisher.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, AsyncIterator, Dict, FrozenSet, Literal, Optional, Set

logger = logging.getLogger(__name__)

EventType = Literal["INSERT", "UPDATE", "DELETE"]

CHANNEL = "taskspace_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: EventType
    user_id: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def record_id(self) -> Optional[str]:
        for row in (self.new, self.old):
            if row and row.get("id") is not None:
                return str(row["id"])
        return None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: str) -> "ChangeEvent":
        """Build an event from the JSON emitted by the row triggers."""
        data = json.loads(payload)
        return cls(
            table=data["table"],
            event_type=data["event_type"],
            user_id=str(data["user_id"]),
            new=data.get("new"),
            old=data.get("old"),
        )


@dataclass(eq=False)
class Subscription:
    user_id: str
    tables: Optional[FrozenSet[str]] = None
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1000))

    def wants(self, event: ChangeEvent) -> bool:
        if event.user_id != self.user_id:
            return False
        return self.tables is None or event.table in self.tables

    def offer(self, event: ChangeEvent) -> None:
        if self.queue.full():
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.warning(f"Subscriber queue full for user {self.user_id}, dropped oldest event")
        self.queue.put_nowait(event)


class ChangeFeed:
    def __init__(self):
        self._subscriptions: Set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, user_id: str, tables: Optional[Set[str]] = None) -> Subscription:
        sub = Subscription(user_id=user_id, tables=frozenset(tables) if tables else None)
        self._subscriptions.add(sub)
        logger.info(f"Realtime subscriber added for user {user_id} ({self.subscriber_count} total)")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)
        logger.info(f"Realtime subscriber removed for user {sub.user_id}")

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every matching subscriber. Returns the delivery count."""
        delivered = 0
        for sub in list(self._subscriptions):
            if sub.wants(event):
                sub.offer(event)
                delivered += 1
        return delivered

    async def listen(
        self, user_id: str, tables: Optional[Set[str]] = None
    ) -> AsyncIterator[ChangeEvent]:
        sub = self.subscribe(user_id, tables)
        try:
            while True:
                yield await sub.queue.get()
        finally:
            self.unsubscribe(sub)


class PostgresChangeListener:
    """Bridges Postgres NOTIFY payloads from the row triggers into a ChangeFeed."""

    def __init__(self, feed: ChangeFeed, channel: str = CHANNEL):
        self.feed = feed
        self.channel = channel
        self._conn = None

    def _on_notify(self, connection, pid, channel, payload) -> None:
        try:
            event = ChangeEvent.from_payload(payload)
        except (ValueError, KeyError) as e:
            logger.error(f"Malformed change notification on {channel}: {e}")
            return
        self.feed.publish(event)

    async def start(self, pool) -> None:
        # A dedicated connection: LISTEN state is per connection
        self._conn = await pool.acquire()
        await self._conn.add_listener(self.channel, self._on_notify)
        logger.info(f"Listening for row changes on channel {self.channel}")

    async def stop(self, pool) -> None:
        if self._conn is None:
            return
        await self._conn.remove_listener(self.channel, self._on_notify)
        await pool.release(self._conn)
        self._conn = None
        logger.info("Stopped row change listener")
