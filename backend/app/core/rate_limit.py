"""
Rate limiting for login and public token endpoints.

Public quote/invoice/project links are unauthenticated, so they are limited
per IP to slow down token guessing.

Two sliding-window backends share the same interface:
- InMemoryRateLimiter: per process, used when REDIS_URL is not set
- RedisRateLimiter: one sorted set per (endpoint, ip), shared by every API instance

If Redis cannot be reached the in-memory limiter takes over for that request.
"""
import time
import logging
import secrets
from collections import defaultdict
from typing import Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import HTTPException, Request, status

from app.core.config import settings

logger = logging.getLogger(__name__)


def _log_exceeded(endpoint: str, ip: str, total_requests: int, max_requests: int, backend: str):
    logger.warning(
        f"Rate limit exceeded for {endpoint}",
        extra={
            "event": "rate_limit_exceeded",
            "endpoint": endpoint,
            "ip": ip,
            "total_requests": total_requests,
            "max_requests": max_requests,
            "backend": backend,
        }
    )


class InMemoryRateLimiter:
    """Sliding window kept in process memory. Only correct with a single API instance."""

    def __init__(self):
        # {endpoint: {ip: [timestamp, ...]}}
        self._windows: Dict[str, Dict[str, list]] = defaultdict(lambda: defaultdict(list))
        self._cleanup_interval = 60  # seconds
        self._last_cleanup = time.time()

    def _cleanup_old_entries(self, window_seconds: int):
        current_time = time.time()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = current_time
        cutoff = current_time - window_seconds

        for endpoint in list(self._windows.keys()):
            per_ip = self._windows[endpoint]
            for ip in list(per_ip.keys()):
                per_ip[ip] = [ts for ts in per_ip[ip] if ts > cutoff]
                if not per_ip[ip]:
                    del per_ip[ip]
            if not per_ip:
                del self._windows[endpoint]

    async def is_rate_limited(
        self,
        endpoint: str,
        ip: str,
        max_requests: int,
        window_seconds: int = 60,
    ) -> Tuple[bool, int]:
        """
        Count this request in the window.

        Returns:
            Tuple of (is_limited, requests_remaining)
        """
        self._cleanup_old_entries(window_seconds)

        current_time = time.time()
        cutoff = current_time - window_seconds
        recent = [ts for ts in self._windows[endpoint][ip] if ts > cutoff]

        if len(recent) >= max_requests:
            self._windows[endpoint][ip] = recent
            _log_exceeded(endpoint, ip, len(recent), max_requests, backend="memory")
            return True, 0

        recent.append(current_time)
        self._windows[endpoint][ip] = recent
        return False, max_requests - len(recent)

    def reset(self):
        """Forget all recorded requests."""
        self._windows.clear()


class RedisRateLimiter:
    """Sliding window stored in Redis sorted sets (score = request timestamp)."""

    key_prefix = "ratelimit"

    def __init__(self, url: str):
        self._client = redis.from_url(url)

    def _key(self, endpoint: str, ip: str) -> str:
        return f"{self.key_prefix}:{endpoint}:{ip}"

    async def is_rate_limited(
        self,
        endpoint: str,
        ip: str,
        max_requests: int,
        window_seconds: int = 60,
    ) -> Tuple[bool, int]:
        key = self._key(endpoint, ip)
        current_time = time.time()

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, current_time - window_seconds)
            pipe.zcard(key)
            _, total_requests = await pipe.execute()

        if total_requests >= max_requests:
            _log_exceeded(endpoint, ip, total_requests, max_requests, backend="redis")
            return True, 0

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zadd(key, {f"{current_time}:{secrets.token_hex(4)}": current_time})
            pipe.expire(key, window_seconds)
            await pipe.execute()

        return False, max_requests - total_requests - 1


# Process-local limiter, also the fallback when Redis is unavailable
rate_limiter = InMemoryRateLimiter()

_redis_limiter: Optional[RedisRateLimiter] = None


def get_shared_limiter() -> Optional[RedisRateLimiter]:
    """Redis-backed limiter when REDIS_URL is configured, else None."""
    global _redis_limiter
    if not settings.redis_enabled:
        return None
    if _redis_limiter is None:
        _redis_limiter = RedisRateLimiter(settings.REDIS_URL)
    return _redis_limiter


# Rate limit configurations
RATE_LIMITS = {
    "login": {"max_requests": 10, "window_seconds": 60},
    "public_quote": {"max_requests": settings.PUBLIC_RATE_LIMIT_PER_MINUTE, "window_seconds": 60},
    "public_quote_respond": {"max_requests": 10, "window_seconds": 60},
    "public_invoice": {"max_requests": settings.PUBLIC_RATE_LIMIT_PER_MINUTE, "window_seconds": 60},
    "public_project": {"max_requests": settings.PUBLIC_RATE_LIMIT_PER_MINUTE, "window_seconds": 60},
    "public_project_auth": {"max_requests": 10, "window_seconds": 60},
    "public_project_edit": {"max_requests": 30, "window_seconds": 60},
}


def get_client_ip(request: Request) -> str:
    """Get client IP from request, considering proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, first is the client
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


async def _hit(endpoint: str, ip: str, config: dict) -> Tuple[bool, int]:
    shared = get_shared_limiter()
    if shared is not None:
        try:
            return await shared.is_rate_limited(endpoint, ip, config["max_requests"], config["window_seconds"])
        except RedisError as e:
            logger.warning(
                "Redis rate limiter unavailable, using in-memory window",
                extra={"event": "rate_limit_backend_error", "endpoint": endpoint, "error": str(e)},
            )
    return await rate_limiter.is_rate_limited(endpoint, ip, config["max_requests"], config["window_seconds"])


async def check_rate_limit(endpoint: str, request: Request):
    """
    Check rate limit for an endpoint.

    Raises:
        HTTPException: If rate limit exceeded
    """
    if endpoint not in RATE_LIMITS:
        return

    config = RATE_LIMITS[endpoint]
    is_limited, _ = await _hit(endpoint, get_client_ip(request), config)

    if is_limited:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded for {endpoint}. Try again later.",
            },
            headers={
                "Retry-After": str(config["window_seconds"]),
                "X-RateLimit-Limit": str(config["max_requests"]),
                "X-RateLimit-Remaining": "0",
            },
        )
