import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api import state
from api.dependencies import get_change_feed, get_repository
from api.metrics import REALTIME_SUBSCRIBERS
from storage.base import Repository
from sync.change_feed import ChangeFeed

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    repo: Repository = Depends(get_repository),
    feed: ChangeFeed = Depends(get_change_feed),
) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "backend": state.backend_type,
        "realtime_subscribers": feed.subscriber_count,
    }

    db_health = await repo.health_check()
    health["database"] = db_health
    if db_health.get("status") != "healthy":
        health["status"] = "degraded"
    return health


@router.get("/metrics")
async def metrics(feed: ChangeFeed = Depends(get_change_feed)) -> Response:
    """
    Prometheus scrape endpoint.
    """
    REALTIME_SUBSCRIBERS.set(feed.subscriber_count)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
