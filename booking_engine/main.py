from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import booking_engine.models  # noqa: F401
from booking_engine.api.v1.api import api_router
from booking_engine.core.config import settings
from booking_engine.core.database import init_db
from booking_engine.core.exceptions import BookingEngineError
from booking_engine.core.logging_config import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(verbose=settings.DEBUG)
    logger.info(
        "Booking engine starting up",
        environment=settings.ENVIRONMENT,
        version=settings.VERSION,
    )
    await init_db()
    yield
    logger.info("Booking engine shutting down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookingEngineError)
    async def booking_error_handler(request: Request, exc: BookingEngineError):
        logger.info(
            "Booking error", path=request.url.path, code=exc.code, reason=exc.message
        )
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.to_detail()},
            headers=headers,
        )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["monitoring"])
    async def health():
        return {"status": "ok", "version": settings.VERSION}

    return app


app = create_app()
