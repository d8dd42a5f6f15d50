"""
API-related enums.

Defines enums for inbound rate limiting of the HTTP surface.
"""

from enum import Enum


class RateLimitType(str, Enum):
    """
    Rate limit categories for different endpoint types.

    Each category has a corresponding rate limit configured in settings.
    Usage:
        from notesynth.enums import RateLimitType
        from notesynth.middleware.rate_limit import get_rate_limit

        limit = get_rate_limit(RateLimitType.BATCH)
    """

    # General API endpoints
    DEFAULT = "default"

    # Batch note generation (fans out many LLM calls)
    BATCH = "batch"
