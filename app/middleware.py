import time
import logging
from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .core.config import settings
from .dependencies import get_store
from .exceptions import AppError, RateLimitedError, create_error_response
from .infrastructure.rate_limit.store_rate_limiter import StoreRateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-IP request cap, counted in the shared ephemeral store."""

    def __init__(self, app: ASGIApp, rate_limit: int = None, exempt_paths=("/health",)):
        super().__init__(app)
        self.rate_limit = settings.RATE_LIMIT_PER_MINUTE if rate_limit is None else rate_limit
        self.exempt_paths = set(exempt_paths)

    def _limiter(self, request: Request) -> StoreRateLimiter:
        # Honour dependency overrides so tests can swap the store
        store_factory = request.app.dependency_overrides.get(get_store, get_store)
        return StoreRateLimiter(store_factory(), prefix="rl:http:")

    async def dispatch(self, request: Request, call_next):
        if self.rate_limit <= 0 or request.url.path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        limiter = self._limiter(request)
        try:
            allowed = await run_in_threadpool(limiter.allow, client_ip, self.rate_limit, RATE_LIMIT_WINDOW_SECONDS)
        except AppError as e:
            # A store outage must not take the whole API down
            logger.error(f"Rate limiter unavailable, letting request through: {e!r}")
            allowed = True

        if not allowed:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            retry_after = await run_in_threadpool(limiter.retry_after, client_ip, RATE_LIMIT_WINDOW_SECONDS)
            return JSONResponse(
                status_code=429,
                content=create_error_response("Rate limit exceeded. Please try again later.", RateLimitedError.code),
                headers={"Retry-After": str(retry_after or RATE_LIMIT_WINDOW_SECONDS)},
            )

        return await call_next(request)


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {request.url.path} from {client_host}")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(f"Response: {response.status_code} in {duration:.3f}s")

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=create_error_response("an internal error occurred", "INTERNAL_ERROR"),
            )
