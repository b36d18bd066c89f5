"""
Skooly API application.

Run locally with ``uvicorn skooly.main:app --reload`` from ``backend/``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from skooly import __version__
from skooly.api import api_router
from skooly.core.config import settings
from skooly.core.logging import get_logger, setup_logging
from skooly.db.session import check_db_health, close_db, init_db

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "starting_application",
        environment=settings.APP_ENV,
        version=__version__,
        storage_backend=settings.STORAGE_BACKEND,
        video_queue=settings.VIDEO_QUEUE_BACKEND,
    )
    await init_db()

    if not settings.GEMINI_API_KEY:
        logger.warning("gemini_not_configured", detail="embedding and generation endpoints will fail")

    yield

    logger.info("shutting_down_application")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Course materials, semantic search, RAG chat and learning-content generation",
    version=__version__,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Generated notes and chat histories compress well
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)

if settings.STORAGE_BACKEND == "local":
    app.mount("/files", StaticFiles(directory=settings.LOCAL_STORAGE_DIR, check_dir=False), name="files")


@app.get("/health", tags=["health"])
async def health_check() -> JSONResponse:
    """Liveness plus a database round trip; 503 when the database is unreachable."""
    db_healthy = await check_db_health()
    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "environment": settings.APP_ENV,
            "version": __version__,
            "database": "connected" if db_healthy else "disconnected",
        },
    )


@app.get("/", tags=["root"])
async def root() -> dict:
    return {"name": settings.APP_NAME, "version": __version__, "api": settings.API_V1_PREFIX}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )
