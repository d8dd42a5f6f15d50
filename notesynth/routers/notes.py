"""
Note Generation API Router

Turns lecture captions into Markdown notes through the dispatch core.

Endpoints:
- POST /api/notes/batch - Generate notes for many items, streamed as SSE
- POST /api/notes/generate - Generate notes for a single item

The batch endpoint streams one server-sent event per progress update
(item_started, item_fetched, item_retrying, item_completed, then a terminal
batch event). Each
item_completed event carries the item's content, so clients assemble the
results themselves. Disconnecting cancels the batch.

Usage:
    # Items with known caption text
    curl -N -X POST /api/notes/batch -H "Content-Type: application/json" \\
        -d '{"items": [{"id": "lec-1", "title": "Intro", "raw_text": "..."}]}'

    # YouTube videos (captions fetched server-side)
    curl -N -X POST /api/notes/batch -H "Content-Type: application/json" \\
        -d '{"video_ids": ["https://youtu.be/dQw4w9WgXcQ"]}'

    # Captions only, no LLM call
    curl -N -X POST /api/notes/batch -H "Content-Type: application/json" \\
        -d '{"video_ids": ["dQw4w9WgXcQ"], "captions_only": true}'
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import Field, model_validator

from notesynth.enums import ErrorKind, RateLimitType
from notesynth.middleware.rate_limit import get_rate_limit, limiter
from notesynth.models.base import StrictRequest, StrictResponse
from notesynth.models.dispatch import WorkItem
from notesynth.services.dispatch import BatchDispatcher, get_provider_pool
from notesynth.services.progress import QueueProgressSink
from notesynth.services.prompts import PromptTemplate
from notesynth.services.sources import ContentSource, YouTubeTranscriptSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])

SourceFactory = Callable[..., ContentSource]


# =============================================================================
# Request / Response Models
# =============================================================================


class WorkItemPayload(StrictRequest):
    """One lecture with its caption text."""

    id: str = Field(..., min_length=1)
    title: str = ""
    raw_text: str

    def to_work_item(self) -> WorkItem:
        return WorkItem(id=self.id, title=self.title or self.id, raw_text=self.raw_text)


class BatchRequest(StrictRequest):
    """
    Batch of items to process.

    Exactly one of `items` (text supplied) or `video_ids` (YouTube URLs or
    ids, captions fetched server-side) must be given. With `captions_only`
    each item's content is its title heading and raw captions, and no
    provider is called.
    """

    items: Optional[list[WorkItemPayload]] = Field(None, min_length=1)
    video_ids: Optional[list[str]] = Field(None, min_length=1)
    titles: dict[str, str] = Field(default_factory=dict, description="Titles by video id")
    languages: list[str] = Field(default_factory=lambda: ["en"], min_length=1)

    provider_order: Optional[list[str]] = None
    batch_concurrency: Optional[int] = Field(None, ge=1)
    prompt_template_b64: Optional[str] = Field(
        None, description="Custom prompt template, base64 encoded UTF-8"
    )
    captions_only: bool = False

    @model_validator(mode="after")
    def check_items(self) -> "BatchRequest":
        if (self.items is None) == (self.video_ids is None):
            raise ValueError("Provide exactly one of 'items' or 'video_ids'")
        ids = [item.id for item in self.items] if self.items is not None else self.video_ids
        if len(set(ids)) != len(ids):
            raise ValueError("Item ids must be unique within a batch")
        return self


class GenerateRequest(StrictRequest):
    """Single item to process."""

    item: WorkItemPayload
    provider_order: Optional[list[str]] = None
    prompt_template_b64: Optional[str] = None


class ResultResponse(StrictResponse):
    item_id: str
    title: str
    content: str
    success: bool
    provider_used: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None


# =============================================================================
# Dependencies
# =============================================================================


def get_dispatcher() -> BatchDispatcher:
    """Dispatcher bound to the process-wide provider pool."""
    return BatchDispatcher(get_provider_pool())


def get_source_factory() -> SourceFactory:
    """Content source used for video id batches."""
    return YouTubeTranscriptSource


def _decode_template(encoded: Optional[str]) -> Optional[PromptTemplate]:
    return PromptTemplate.from_base64(encoded) if encoded else None


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/batch")
@limiter.limit(get_rate_limit(RateLimitType.BATCH))
async def generate_batch(
    request: Request,
    body: BatchRequest,
    dispatcher: BatchDispatcher = Depends(get_dispatcher),
    source_factory: SourceFactory = Depends(get_source_factory),
):
    """
    Generate notes for a batch and stream progress as server-sent events.

    Configuration problems (no provider credentials, unknown provider names,
    invalid prompt template) are reported as a JSON error before streaming
    starts. Captions-only batches need no provider credentials.
    """
    sink = QueueProgressSink()
    cancel_event = asyncio.Event()
    options = {
        "provider_order": body.provider_order,
        "batch_concurrency": body.batch_concurrency,
        "template": _decode_template(body.prompt_template_b64),
        "sink": sink,
        "cancel_event": cancel_event,
        "captions_only": body.captions_only,
    }

    if body.items is not None:
        results = dispatcher.process_batch(
            [payload.to_work_item() for payload in body.items], **options
        )
        total = len(body.items)
    else:
        source = source_factory(titles=body.titles, languages=body.languages)
        results = dispatcher.process_ids(body.video_ids, source, **options)
        total = len(body.video_ids)

    logger.info(f"Streaming batch of {total} items")

    async def drain() -> None:
        async with aclosing(results) as stream:
            async for _ in stream:
                pass

    async def event_stream():
        task = asyncio.create_task(drain())
        try:
            async for event in sink.events():
                yield event.to_sse()
            await asyncio.gather(task, return_exceptions=True)
        finally:
            if not task.done():
                logger.info("Client disconnected, cancelling batch")
                cancel_event.set()
                task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/generate", response_model=ResultResponse)
async def generate_note(
    body: GenerateRequest,
    dispatcher: BatchDispatcher = Depends(get_dispatcher),
):
    """
    Generate notes for one item and return its Result.

    A failed generation is still a 200 response: success is False and the
    content is the title heading followed by the raw text.
    """
    item = body.item.to_work_item()
    summary = await dispatcher.run_batch(
        [item],
        provider_order=body.provider_order,
        template=_decode_template(body.prompt_template_b64),
    )
    return ResultResponse.model_validate(summary.results[item.id])
