import asyncio
import json
import logging
import os
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from api.dependencies import get_change_feed, get_current_user_id
from api.metrics import REALTIME_SUBSCRIBERS
from sync.change_feed import ChangeFeed, Subscription

router = APIRouter()
logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = float(os.getenv("REALTIME_HEARTBEAT_SECONDS", "30"))
STREAM_TABLES = {"tasks", "workspaces", "tags"}


def format_sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def event_stream(
    feed: ChangeFeed,
    sub: Subscription,
    request: Optional[Request] = None,
    heartbeat_s: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """Forward a subscription as SSE frames until the client goes away."""
    REALTIME_SUBSCRIBERS.inc()
    try:
        yield format_sse("ready", {"tables": sorted(sub.tables or STREAM_TABLES)})
        while True:
            if request is not None and await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(sub.queue.get(), timeout=heartbeat_s)
            except asyncio.TimeoutError:
                yield format_sse("heartbeat", {})
                continue
            yield format_sse("change", event.to_dict())
    finally:
        feed.unsubscribe(sub)
        REALTIME_SUBSCRIBERS.dec()


@router.get("/changes/stream")
async def stream_changes(
    request: Request,
    tables: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    feed: ChangeFeed = Depends(get_change_feed),
) -> StreamingResponse:
    """
    Server-Sent Events stream of row changes for the current user.

    `tables` is a comma separated subset of tasks, workspaces and tags.
    A heartbeat event is sent when nothing changed for a while.
    """
    wanted = {t.strip() for t in (tables or "").split(",") if t.strip()} & STREAM_TABLES
    sub = feed.subscribe(user_id, wanted or None)
    return StreamingResponse(
        event_stream(feed, sub, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
