"""
Centralized enum definitions for the application.

All enums are organized by domain:
- dispatch.py: Providers, per-item error kinds, progress event types
- api.py: Inbound rate limit categories

Usage:
    from notesynth.enums import ErrorKind, ProviderName
"""

from notesynth.enums.api import RateLimitType
from notesynth.enums.dispatch import ErrorKind, ProgressEventType, ProviderName

__all__ = [
    "ErrorKind",
    "ProgressEventType",
    "ProviderName",
    "RateLimitType",
]
