"""
Main FastAPI application for the novelhub paid-content API.
Serves health, chapters (reading with access decisions, staff edits), modules
(mode/price, rentals), novels (contributions, auto-unlock) and metrics.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from novelhub.api.routes import chapters, health, modules, novels
from novelhub.core.config import settings
from novelhub.core.exceptions import NovelhubError
from novelhub.core.logging import configure_logging
from novelhub.services.auth.tokens import ReaderTokenService
from novelhub.services.cache import ContentCache
from novelhub.services.idempotency import IdempotencyStore
from novelhub.services.invalidation import InvalidationSink
from novelhub.utils.metrics import router as metrics_router

configure_logging()
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Novelhub API",
    description="Paid content access, module rentals and budget auto-unlock",
    version="1.0.0",
)

# CORS
origins = settings.cors_origins_list
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Per-app collaborators: one cache per process, handed to routes via app.state
app.state.content_cache = ContentCache(
    max_entries=settings.content_cache_max_entries,
    ttl_seconds=settings.content_cache_ttl_seconds,
)
app.state.invalidation_sink = InvalidationSink(cache=app.state.content_cache)
app.state.idempotency_store = IdempotencyStore()
app.state.token_service = ReaderTokenService()


@app.exception_handler(NovelhubError)
async def novelhub_error_handler(request: Request, exc: NovelhubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **({"info": exc.detail} if exc.detail else {})},
    )


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(chapters.router)
app.include_router(modules.router)
app.include_router(novels.router)
app.include_router(metrics_router)
