"""
HTTP Middleware.

- RequestTrackingMiddleware: assigns a request id, echoes it in X-Request-Id
  and logs each response with its duration.
- RateLimitMiddleware: applies the general limiter to every API call and the
  stricter auth limiter to /api/auth.
"""

import logging
import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .rate_limit import TokenBucketLimiter

logger = logging.getLogger("exchange.requests")


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Attach a request id and log the outcome of every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        path = request.url.path
        logger.info(f"[{request_id}] {request.method} {path}")

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-Id"] = request_id
        status = response.status_code
        message = f"[{request_id}] Response {status} {request.method} {path} ({elapsed_ms:.0f}ms)"
        if status >= 500:
            logger.error(message)
        elif status >= 400:
            logger.warning(message)
        else:
            logger.info(message)
        return response


def _client_ip(request: Request, trust_forwarded: bool = False) -> str:
    """
    The caller's address. X-Forwarded-For is client-controlled, so it is only
    read when a trusted proxy in front of the service sets it.
    """
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject callers that exceed their token budget with 429."""

    def __init__(self, app, general: TokenBucketLimiter, auth: TokenBucketLimiter, trust_forwarded: bool = False):
        super().__init__(app)
        self.general = general
        self.auth = auth
        self.trust_forwarded = trust_forwarded

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith("/api/") or path == "/api/health":
            return await call_next(request)

        ip = _client_ip(request, self.trust_forwarded)
        if path.startswith("/api/auth"):
            limiter, key, message = self.auth, ip, "Too many authentication attempts, please try again later"
        else:
            limiter, key = self.general, ip + request.headers.get("user-agent", "")
            message = "Too many requests"

        try:
            result = await limiter.consume(key)
        except Exception as e:
            # Limiter backend failure lets the request through
            logger.error(f"Rate limiter error ({limiter.rule.name}): {e}")
            return await call_next(request)

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {ip} on {path}, retry in {result.retry_after_seconds}s")
            return JSONResponse(
                status_code=429,
                content={"error": message, "retryAfter": result.retry_after_seconds},
                headers={"Retry-After": str(result.retry_after_seconds)},
            )
        return await call_next(request)
