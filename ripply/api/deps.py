import logging
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis

from ripply.core.config import settings
from ripply.core.rate_limit import hit_fixed_window
from ripply.core.security import TokenError, decode_access_token, subject_user_id
from ripply.db.session import AsyncSessionLocal
from ripply.infra.redis_client import get_redis
from ripply.services.feed_service import FeedService
from ripply.services.feed_store import FeedStore

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> UUID:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        return subject_user_id(decode_access_token(credentials.credentials))
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def get_feed_store() -> FeedStore:
    return FeedStore(AsyncSessionLocal)


def get_feed_service(store: FeedStore = Depends(get_feed_store)) -> FeedService:
    return FeedService(store)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(
    request: Request,
    response: Response,
    redis: Redis = Depends(get_redis),
) -> None:
    ip = client_ip(request)
    window = await hit_fixed_window(
        redis,
        f"ratelimit:feed:{ip}",
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    if not window.allowed:
        logger.info("rate limit exceeded", extra={"ip": ip, "count": window.count})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later",
            headers={
                "Retry-After": str(window.retry_after),
                "X-RateLimit-Limit": str(window.limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    response.headers["X-RateLimit-Limit"] = str(window.limit)
    response.headers["X-RateLimit-Remaining"] = str(window.remaining)
