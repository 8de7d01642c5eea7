"""Rate limiting for generation endpoints using Upstash Redis.

Every generation call costs provider quota, so the generation routes are
guarded by a distributed sliding window. Signed-in callers are bucketed by
user id, anonymous callers by client IP. When Upstash is not configured
(development/test) the limiter is disabled and requests pass through.
"""

from __future__ import annotations

import logging
import time
import uuid
from functools import lru_cache
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status

from core.config import Settings, get_settings
from dependencies.auth import OptionalUser


if TYPE_CHECKING:
    from upstash_ratelimit import Ratelimit

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "codescribe:ratelimit"

# Paths that bypass rate limiting (health checks, etc.)
RATE_LIMIT_BYPASS_PATHS: set[str] = {
    "/api/v1/health",
    "/api/v1/health/",
    "/health",
    "/health/",
}


@lru_cache
def get_ratelimiter() -> Ratelimit | None:
    """Create and cache the rate limiter instance, or None when unconfigured."""
    from upstash_ratelimit import Ratelimit, SlidingWindow
    from upstash_redis import Redis

    settings = get_settings()

    if not settings.UPSTASH_REDIS_REST_URL or not settings.UPSTASH_REDIS_REST_TOKEN:
        logger.warning(
            "Upstash Redis not configured. Rate limiting is disabled. "
            "Set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN to enable."
        )
        return None

    try:
        redis = Redis(
            url=settings.UPSTASH_REDIS_REST_URL,
            token=settings.UPSTASH_REDIS_REST_TOKEN,
        )
        ratelimit = Ratelimit(
            redis=redis,
            limiter=SlidingWindow(
                max_requests=settings.RATE_LIMIT_REQUESTS,
                window=settings.RATE_LIMIT_WINDOW_SECONDS,
            ),
            prefix=RATE_LIMIT_PREFIX,
        )
    except Exception as e:
        logger.error("Failed to initialize rate limiter: %s", e)
        return None

    logger.info(
        "Rate limiting enabled: %d requests per %d seconds",
        settings.RATE_LIMIT_REQUESTS,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    return ratelimit


def _get_client_identifier(request: Request, user_id: str | None = None) -> str:
    """Pick the rate limit bucket for a request.

    Signed-in users share one bucket across devices. Otherwise the first
    ``X-Forwarded-For`` hop or the direct client IP is used; an unidentifiable
    client gets a per-request bucket so unrelated callers never collide.
    """
    if user_id:
        return f"user:{user_id}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return f"unknown:{uuid.uuid4()}"


async def check_rate_limit(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    user: OptionalUser,
) -> None:
    """FastAPI dependency enforcing the sliding window; raises 429 when exceeded.

    Limiter failures are logged and the request is allowed through.

    Usage:
        @router.post("/generate", dependencies=[Depends(check_rate_limit)])
    """
    path = request.url.path
    if path in RATE_LIMIT_BYPASS_PATHS:
        return

    ratelimiter = get_ratelimiter()
    if ratelimiter is None:
        return

    identifier = _get_client_identifier(
        request, str(user.id) if user is not None else None
    )

    try:
        response = ratelimiter.limit(identifier)
    except Exception as e:
        logger.error("Rate limit check failed: %s", e)
        return

    if response.allowed:
        return

    current_time_ms = int(time.time() * 1000)
    retry_after = max(1, (response.reset - current_time_ms) // 1000)
    logger.warning(
        "Rate limit exceeded for %s on %s. Reset in %d seconds.",
        identifier,
        path,
        retry_after,
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests. Please try again later.",
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(settings.RATE_LIMIT_REQUESTS),
            "X-RateLimit-Remaining": str(response.remaining),
        },
    )
