import logging

from fastapi import Request, status
from redis.exceptions import RedisError

from expresstrafic.config import settings
from expresstrafic.errors import ErrorCode, api_error
from expresstrafic.logging_setup import log_security_event
from expresstrafic.metrics import RATE_LIMIT_REJECTIONS
from expresstrafic.redis_client import redis_client

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Fixed-window counter per client IP, used as a route dependency.

    Redis outages degrade to allowing the request.
    """

    def __init__(self, prefix: str, max_requests: int, window_seconds: int, message: str = "Too many requests, try again later"):
        self.prefix = prefix
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message

    async def __call__(self, request: Request) -> None:
        ip = client_ip(request)
        key = f"rl:{self.prefix}:{ip}"
        try:
            count = await redis_client.incr(key)
            if count == 1:
                await redis_client.expire(key, self.window_seconds)
        except RedisError as exc:
            logger.warning("rate limiter %s unavailable: %s", self.prefix, exc)
            return
        if count > self.max_requests:
            RATE_LIMIT_REJECTIONS.labels(limiter=self.prefix).inc()
            log_security_event("RATE_LIMIT_EXCEEDED", ip=ip, limiter=self.prefix, path=request.url.path)
            api_error(
                status.HTTP_429_TOO_MANY_REQUESTS,
                self.message,
                code=ErrorCode.RATE_LIMIT_EXCEEDED,
                headers={"Retry-After": str(self.window_seconds)},
            )


reservation_limiter = RateLimiter(
    "reservations",
    settings.RESERVATION_RATE_LIMIT,
    settings.RESERVATION_RATE_LIMIT_WINDOW_SECONDS,
    message="Too many reservation attempts, try again in a minute",
)
api_limiter = RateLimiter("api", settings.API_RATE_LIMIT, settings.API_RATE_LIMIT_WINDOW_SECONDS)


# ---- Login throttling ----

def _login_key(identifier: str) -> str:
    return f"rl:login:{identifier.lower()}"


async def login_blocked(identifier: str) -> bool:
    attempts = await redis_client.get(_login_key(identifier))
    return bool(attempts) and int(attempts) >= settings.LOGIN_RATE_LIMIT_ATTEMPTS


async def record_login_failure(identifier: str) -> int:
    key = _login_key(identifier)
    count = await redis_client.incr(key)
    await redis_client.expire(key, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS)
    return count


async def reset_login_failures(identifier: str) -> None:
    await redis_client.delete(_login_key(identifier))
