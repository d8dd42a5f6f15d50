"""
Dispatch Data Model

Types that flow through the dispatch core:

- WorkItem: one lecture/video to transform (immutable, consumed once)
- SourceContent: what a content source returns for an item id
- ProviderConfig: static pacing policy for one provider
- RetryAttempt: ephemeral record of one backoff before a retry
- Result: exactly one per WorkItem, handed to the caller
- BatchSummary: all Results of a batch keyed by item id
- ProgressEvent: one update published to a progress sink

Usage:
    from notesynth.models.dispatch import WorkItem, Result

    item = WorkItem(id="lec-1", title="Intro", raw_text="welcome to ...")
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from notesynth.enums.dispatch import ErrorKind, ProgressEventType


@dataclass(frozen=True)
class WorkItem:
    """One unit of input: a lecture or video and its caption text."""

    id: str
    title: str
    raw_text: str


@dataclass(frozen=True)
class SourceContent:
    """Title and raw text supplied by a content source for one item id."""

    title: str
    raw_text: str


def fallback_content(title: str, raw_text: str) -> str:
    """Render the degraded note used when no provider produced text."""
    return f"# {title}\n\n{raw_text}"


@dataclass(frozen=True)
class Result:
    """
    Outcome of processing one WorkItem.

    Attributes:
        item_id: Id of the WorkItem this result belongs to
        content: Generated notes, or the fallback rendering on failure
        success: True only when a provider produced the content
        title: Item title, echoed for convenience
        provider_used: Name of the provider that produced the content
        error_kind: Failure classification when success is False
        error_message: Human-readable failure detail
    """

    item_id: str
    content: str
    success: bool
    title: str = ""
    provider_used: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        if self.error_kind is not None:
            data["error_kind"] = self.error_kind.value
        return data


@dataclass(frozen=True)
class RetryAttempt:
    """A backoff about to happen before retrying a rate-limited provider."""

    provider: str
    attempt_number: int  # attempt that just failed, starting at 1
    backoff_ms: float


@dataclass
class BatchSummary:
    """All Results of one batch, keyed by item id."""

    results: dict[str, Result] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def by_provider(self) -> dict[str, int]:
        """Count of successful results per provider."""
        return dict(
            Counter(
                r.provider_used
                for r in self.results.values()
                if r.success and r.provider_used
            )
        )

    @property
    def by_error_kind(self) -> dict[ErrorKind, int]:
        """Count of failed results per error kind."""
        return dict(
            Counter(
                r.error_kind
                for r in self.results.values()
                if not r.success and r.error_kind
            )
        )

    def describe(self) -> str:
        """One-line status, e.g. '8 of 10 succeeded (groq: 6, gemini: 2); 2 failed'."""
        text = f"{self.succeeded} of {self.total} succeeded"
        if self.by_provider:
            parts = ", ".join(f"{name}: {n}" for name, n in sorted(self.by_provider.items()))
            text += f" ({parts})"
        if self.failed:
            text += f"; {self.failed} failed"
        if self.cancelled:
            text += "; cancelled"
        return text


class ProviderConfig(BaseModel):
    """
    Static pacing policy for one provider.

    Loaded once at process start (config/default.yaml) and never mutated.
    The first six fields are the core policy; the rest tune the invoker and
    batch defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    min_interval_ms: float = Field(default=0, ge=0)
    max_concurrent: int = Field(default=1, ge=1)
    max_retries: int = Field(default=3, ge=0)
    base_backoff_ms: float = Field(default=4000, ge=0)
    backoff_multiplier: float = Field(default=1.5, ge=1)

    max_backoff_ms: Optional[float] = Field(default=None, ge=0)
    batch_concurrency: int = Field(default=3, ge=1)
    retry_on_network_errors: bool = False
    model: Optional[str] = None
    timeout_seconds: float = Field(default=60.0, gt=0)
    temperature: float = 0.3
    max_output_tokens: Optional[int] = Field(default=None, ge=1)


class ProgressEvent(BaseModel):
    """
    One update published to a progress sink.

    Item events carry the item's outcome (and, for completed items, the
    generated content so a streaming client can assemble results itself).
    Batch events carry the terminal status.
    """

    event: ProgressEventType
    batch_id: str
    completed: int = 0
    total: int = 0
    progress: int = 0  # percent of items completed
    message: str = ""

    item_id: Optional[str] = None
    title: Optional[str] = None
    success: Optional[bool] = None
    provider_used: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    content: Optional[str] = None

    attempt: Optional[int] = None
    backoff_ms: Optional[float] = None

    def to_sse(self) -> str:
        """Serialize as one server-sent events frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
