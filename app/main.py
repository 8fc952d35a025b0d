from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.database import Database
from app.core.rate_limiter import limiter, rate_limit_exceeded_handler
from app.api.router import api_router
from app.services.sweep_service import SweepScheduler
import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_version() -> str:
    """Read version from VERSION file, fallback to default if not found."""
    version_file = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION")
    try:
        if os.path.exists(version_file):
            with open(version_file, "r") as f:
                version = f.read().strip()
                if version:
                    return version
    except Exception as e:
        logger.warning(f"Could not read VERSION file: {e}")
    return "1.0.0"


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as {"message": ...}; dict details carry extra context fields"""
    if isinstance(exc.detail, dict):
        content = dict(exc.detail)
        content.setdefault("message", "Request failed")
    else:
        content = {"message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Validation failed - path: {request.url.path}, errors: {len(exc.errors())}")
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid input", "errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error - path: {request.url.path}, error: {exc}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app(database: Optional[Database] = None, start_scheduler: bool = True) -> FastAPI:
    """
    Build the application around an explicit Database.
    When no database is given one is created from settings and disposed on shutdown.
    """
    owns_database = database is None
    database = database or Database(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        scheduler = None
        if start_scheduler and settings.sweep_enabled:
            scheduler = SweepScheduler(database)
            scheduler.start(run_soon=settings.environment == "development")
        app.state.sweep_scheduler = scheduler
        logger.info(f"QuizBanner API started - environment: {settings.environment}")
        yield
        if scheduler is not None:
            scheduler.shutdown()
        if owns_database:
            database.dispose()

    app = FastAPI(
        title="QuizBanner API",
        version=get_version(),
        debug=settings.debug,
        redirect_slashes=False,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.limiter = limiter
    app.state.sweep_scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get(f"{settings.api_prefix}/health")
    async def health_check():
        return {
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat(),
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
