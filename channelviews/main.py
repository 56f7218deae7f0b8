"""
Channel Views API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Build the entity store adapter (SQL engine + session factory, or in-memory)
  3. Create tables if not present (SQL backend only)
  4. Expose Prometheus /metrics endpoint

The store handle lives on ``app.state.store`` and is handed to every
composition through the ``get_store`` dependency.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from channelviews.config import settings
from channelviews.database import build_engine, build_session_factory, init_db
from channelviews.errors import CompositionError
from channelviews.routers import channels, posts, users, videos
from channelviews.schemas import ErrorResponse, HealthResponse
from channelviews.store import EntityStore, MemoryEntityStore, SqlEntityStore
from channelviews.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


async def build_store() -> EntityStore:
    if settings.store_backend == "memory":
        logger.info("Using in-memory entity store")
        return MemoryEntityStore()

    engine = build_engine(settings)
    await init_db(engine)
    return SqlEntityStore(build_session_factory(engine), engine=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store once at startup and release it on shutdown."""
    logger.info("Starting Channel Views API (env=%s)", settings.environment)
    app.state.store = await build_store()
    logger.info("Entity store ready (%s). API ready.", settings.store_backend)
    yield

    logger.info("Shutting down...")
    await app.state.store.close()


app = FastAPI(
    title="Channel Views API",
    description=(
        "Denormalised, paginated read models over channels, videos, posts, "
        "comments and likes, enriched with viewer-relative flags."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(channels.router, prefix="/channels", tags=["Channels"])
app.include_router(videos.router, prefix="/videos", tags=["Videos"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(users.router, prefix="/users", tags=["Users"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.exception_handler(CompositionError)
async def composition_error_handler(request: Request, exc: CompositionError):
    body = ErrorResponse(
        status=exc.http_status,
        message=exc.message,
        data=None,
        stage=exc.stage,
    )
    return JSONResponse(status_code=exc.http_status, content=body.model_dump())


@app.get("/health", tags=["Health"], response_model=HealthResponse)
async def health():
    return {"status": "ok", "service": settings.service_name}
