"""Data models for the dispatch core and the HTTP surface."""

from notesynth.models.base import StrictRequest, StrictResponse
from notesynth.models.dispatch import (
    BatchSummary,
    ProgressEvent,
    ProviderConfig,
    Result,
    RetryAttempt,
    SourceContent,
    WorkItem,
    fallback_content,
)

__all__ = [
    "BatchSummary",
    "ProgressEvent",
    "ProviderConfig",
    "Result",
    "RetryAttempt",
    "SourceContent",
    "StrictRequest",
    "StrictResponse",
    "WorkItem",
    "fallback_content",
]
