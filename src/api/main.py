import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import state
from api.metrics import REQUESTS_TOTAL, REQUEST_LATENCY_SECONDS
from api.routers import (
    ai,
    attachments,
    calendar,
    calendar_auth,
    changes,
    ops,
    tags,
    tasks,
    workspaces,
)
from storage import db
from storage.memory_store import InMemoryRepository
from storage.postgres_store import PostgresRepository
from sync.change_feed import ChangeFeed, PostgresChangeListener
from taskspace.errors import TaskspaceError, UpstreamError

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

USE_DATABASE = os.getenv("USE_DATABASE", "false").lower() in {"1", "true", "yes"}

app = FastAPI(title="Taskspace")


@app.exception_handler(TaskspaceError)
async def taskspace_error_handler(request: Request, exc: TaskspaceError) -> JSONResponse:
    body = {"detail": exc.message}
    if isinstance(exc, UpstreamError) and exc.details:
        body["details"] = exc.details
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    # Route templates keep label cardinality bounded
    endpoint = getattr(route, "path", "unmatched")
    REQUESTS_TOTAL.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.perf_counter() - start)
    return response


app.include_router(ops.router)
app.include_router(workspaces.router)
app.include_router(tasks.router)
app.include_router(tags.router)
app.include_router(attachments.router)
app.include_router(ai.router)
app.include_router(calendar_auth.router)
app.include_router(calendar.router)
app.include_router(changes.router)


@app.on_event("startup")
async def startup() -> None:
    state.feed = ChangeFeed()

    if USE_DATABASE:
        logger.info("Initializing PostgreSQL backend...")
        pool = await db.init_db_pool()
        await db.init_schema()
        state.repo = PostgresRepository()
        state.change_listener = PostgresChangeListener(state.feed)
        await state.change_listener.start(pool)
        state.backend_type = "postgres"
    else:
        state.repo = InMemoryRepository(state.feed)
        state.backend_type = "in-memory"

    logger.info(f"Taskspace started with {state.backend_type} backend")


@app.on_event("shutdown")
async def shutdown() -> None:
    if state.change_listener is not None:
        await state.change_listener.stop(db.get_pool())
        state.change_listener = None
    if state.backend_type == "postgres":
        await db.close_db_pool()
    logger.info("Taskspace stopped")
