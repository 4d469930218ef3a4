"""
Proctoring Engine - FastAPI Application
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import router as proctor_router, _sessions
from .config import settings
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    description="Client-side proctoring violation engine",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests with timing."""
    start = time.time()
    path = request.url.path

    response = await call_next(request)

    if not path.endswith("/health"):
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"{request.method} {path} -> {response.status_code} in {duration_ms}ms")
    return response


# The exam page runs on another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(proctor_router)


@app.on_event("startup")
async def startup_event():
    setup_logging(
        service_name="proctoring",
        level=settings.LOG_LEVEL,
        log_to_file=settings.LOG_TO_FILE,
        log_dir=settings.LOG_DIR
    )
    logger.info(f"{settings.APP_NAME} started (server: {settings.PROCTOR_API_BASE_URL})")


@app.on_event("shutdown")
async def shutdown_event():
    """Flush and close every session still held in memory."""
    for attempt_id, session in list(_sessions.items()):
        try:
            await session.aclose()
        except Exception as e:
            logger.error(f"Failed to close session {attempt_id}: {e}")
    _sessions.clear()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "docs": "/docs" if settings.DEBUG else "Disabled in production"
    }
