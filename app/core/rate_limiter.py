from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """Principal id when one was resolved for the request, else the client address"""
    principal_id = getattr(request.state, 'principal_id', None)
    if principal_id:
        return f"principal:{principal_id}"
    return get_remote_address(request)


# Auth endpoints are limited per client address; in-memory storage suits the single-process server
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    key = get_rate_limit_key(request)
    logger.warning(f"Rate limit exceeded - key: {key}, path: {request.url.path}, limit: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={"message": f"Too many requests. Limit: {exc.detail}. Please try again later."},
    )
