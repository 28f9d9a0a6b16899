"""Redis-based rate limiting middleware.

Fixed one-minute windows keyed by caller and route class. Every
response carries X-RateLimit-Limit / X-RateLimit-Remaining; a 429 also
carries Retry-After. When Redis is unreachable requests are let through.
"""
import hashlib
import os
import time
import logging
from typing import Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import redis.asyncio as aioredis

from app.config import REDIS_URL

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

GLOBAL_LIMIT = 60       # requests per minute per dashboard user
EXPENSIVE_LIMIT = 20    # price comparisons per minute per dashboard user
WEBHOOK_LIMIT = 600     # requests per minute for the workflow engine
ANON_LIMIT = 10         # requests per minute per anonymous IP

WEBHOOK_PREFIX = "/webhook/"


def _is_expensive(request: Request) -> bool:
    path = request.url.path
    return request.method == "GET" and path.startswith("/properties/") and path.endswith("/prices")


def classify(request: Request) -> Tuple[str, int]:
    """Return the (bucket, limit) a request counts against."""
    auth = request.headers.get("authorization", "")
    if not auth.startswith("Bearer "):
        host = request.client.host if request.client else "unknown"
        return f"anon:{host}", ANON_LIMIT

    # Tokens never reach Redis, only a short digest
    digest = hashlib.sha256(auth.encode()).hexdigest()[:16]
    if request.url.path.startswith(WEBHOOK_PREFIX):
        return f"webhook:{digest}", WEBHOOK_LIMIT
    if _is_expensive(request):
        return f"user:{digest}:prices", EXPENSIVE_LIMIT
    return f"user:{digest}", GLOBAL_LIMIT


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        try:
            self.redis = aioredis.from_url(REDIS_URL)
        except Exception as e:
            logger.warning(f"Rate limiting disabled, Redis unavailable: {e}")
            self.redis = None

    async def _hit(self, bucket: str, now: float) -> int:
        key = f"ratelimit:{bucket}:{int(now) // WINDOW_SECONDS}"
        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, WINDOW_SECONDS * 2)
        count, _ = await pipe.execute()
        return count

    async def dispatch(self, request: Request, call_next):
        if not self.redis or os.getenv("TESTING"):
            return await call_next(request)

        bucket, limit = classify(request)
        now = time.time()
        try:
            count = await self._hit(bucket, now)
        except Exception as e:
            logger.warning(f"Rate limit check failed: {e}")
            return await call_next(request)

        if count > limit:
            retry_after = WINDOW_SECONDS - int(now) % WINDOW_SECONDS
            logger.info(f"Rate limit exceeded for {bucket} ({count}/{limit})")
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Please slow down."},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(limit - count)
        return response
