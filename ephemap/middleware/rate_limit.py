"""
Rate limiting for interaction endpoints.

Likes, dislikes, comments and uploads are limited per actor label
(the ``X-Actor-Id`` header), falling back to the client address when
no label is sent.
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from ephemap.core.config import settings

logger = logging.getLogger(__name__)


def get_actor_key(request: Request) -> str:
    """Rate limit key: actor label if present, else client IP."""
    actor = request.headers.get("X-Actor-Id")
    if actor:
        return f"actor:{actor.strip()}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_actor_key,
    enabled=settings.RATE_LIMIT_ENABLED,
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Return 429 with a Retry-After hint."""
    logger.warning(f"Rate limit exceeded: {get_actor_key(request)} on {request.url.path}")
    retry_after = 60
    response = JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": f"Rate limit exceeded: {exc.detail}",
            "retry_after": retry_after,
        },
    )
    response.headers["Retry-After"] = str(retry_after)
    return response
