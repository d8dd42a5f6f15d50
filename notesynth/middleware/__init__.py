"""
Middleware Package

Provides FastAPI middleware for:
- Rate limiting of inbound requests
- Error handling

Rate limiting usage:
    from notesynth.middleware import limiter, get_rate_limit
    from notesynth.enums import RateLimitType

    @limiter.limit(get_rate_limit(RateLimitType.BATCH))
    async def my_endpoint(request: Request):
        ...
"""

from notesynth.middleware.error_handling import (
    ErrorHandlingMiddleware,
    LLMError,
    ServiceError,
    setup_error_handling,
)
from notesynth.middleware.rate_limit import get_rate_limit, limiter, setup_rate_limiting

__all__ = [
    "setup_rate_limiting",
    "limiter",
    "get_rate_limit",
    "ErrorHandlingMiddleware",
    "ServiceError",
    "LLMError",
    "setup_error_handling",
]
