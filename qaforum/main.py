"""
qaforum - Trust-Weighted Answer Curation

Main application entry point.

Students curate answers by the reviewers they trust. Admins manage
roles and instructors decide who may review.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qaforum import __version__
from qaforum.api.routes import router
from qaforum.core import Forum
from qaforum.db.factory import create_store
from qaforum.db.seed import auto_seed_enabled, seed_demo_data
from qaforum.observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Tests may install their own forum before startup
    forum = getattr(app.state, "forum", None)
    if forum is None:
        forum = Forum(create_store())
        app.state.forum = forum

    if auto_seed_enabled():
        seed_demo_data(forum.store)

    logger.info(
        "Application startup complete",
        store_type=type(forum.store).__name__,
    )

    yield

    logger.info("Application shutdown complete")


app = FastAPI(
    title="qaforum",
    description="""
## Trust-Weighted Answer Curation

Each student keeps a map of reviewers they trust, with a weight per
reviewer. Curating a question ranks its answers by the summed weight of
trusted reviews:

- Accepted answers first
- Then by trust score
- Then newest first

Answers no trusted reviewer has reviewed are left out.

### Trust cache

A student's trust map is loaded once per session. Edits to the map show
up in curated results after `POST .../curation/reload` or
`POST .../curation/check-updates`.

### Roles

Role sets are replaced as a whole. The only admin cannot remove their
own admin role. Students ask to become reviewers; instructors decide.

### Storage Backends

- **InMemoryForumStore**: Development/testing (default)
- **PostgresForumStore**: Production

Set `DATABASE_URL` or `DATABASE_HOST` environment variables to use PostgreSQL.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add request context middleware for logging
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://127.0.0.1:5173",
    ],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health", tags=["System"])
async def health(request: Request):
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    For detailed health, use /health/detailed
    """
    return {"status": "healthy", "service": "qaforum"}


@app.get("/health/detailed", tags=["System"])
async def health_detailed(request: Request):
    """
    Detailed health check with store connectivity.

    Returns 200 if healthy, 503 if unhealthy.
    """
    health_status = check_health(store=request.app.state.forum.store)

    return JSONResponse(
        status_code=200 if health_status.healthy else 503,
        content={
            "status": "healthy" if health_status.healthy else "unhealthy",
            "checks": health_status.checks,
            "duration_ms": health_status.duration_ms,
        },
    )


@app.get("/metrics", tags=["System"])
async def metrics():
    """
    Get application metrics.

    Returns counters and latency percentiles.
    """
    return get_metrics().get_summary()
