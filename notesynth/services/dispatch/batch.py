"""
Batch Dispatcher

Runs many WorkItems through the FallbackOrchestrator concurrently, bounded
by the batch concurrency, and yields each Result as soon as its item
finishes. Results arrive in completion order; consumers key them by item id.

Guarantees:
- Provider order, batch concurrency and the prompt template are validated
  when the batch is created, so a ConfigurationError surfaces before any
  item runs.
- Every item yields exactly one Result unless the batch is cancelled. An
  unexpected exception inside one item becomes an UNKNOWN Result for that
  item only.
- Cancellation (setting cancel_event, closing the iterator, or cancelling
  the consuming task) cancels pending item tasks, waits for them to settle,
  emits no further Results, and starts no further provider invocations.

Progress is published to an optional sink: item_started when an item gets
its batch slot, item_fetched once a source has supplied its text,
item_retrying before each backoff, item_completed per Result, then one
terminal batch event.

In captions-only mode no provider is needed or called: each item resolves
to its title heading followed by the raw text.

Usage:
    dispatcher = BatchDispatcher(get_provider_pool())

    async for result in dispatcher.process_batch(items, sink=sink):
        print(result.item_id, result.success)

    summary = await dispatcher.run_batch(items)
    print(summary.describe())
"""

import asyncio
import logging
from collections import Counter
from contextlib import aclosing
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional
from uuid import uuid4

from notesynth.enums.dispatch import ErrorKind, ProgressEventType
from notesynth.models.dispatch import (
    BatchSummary,
    ProgressEvent,
    Result,
    RetryAttempt,
    WorkItem,
    fallback_content,
)
from notesynth.services.dispatch.orchestrator import FallbackOrchestrator
from notesynth.services.dispatch.pool import ProviderPool
from notesynth.services.errors import BatchCancelledError, ConfigurationError
from notesynth.services.progress import ProgressSink
from notesynth.services.prompts import PromptTemplate, get_default_template
from notesynth.services.sources import ContentSource

logger = logging.getLogger(__name__)


@dataclass
class _BatchPlan:
    """Validated settings and running counters of one batch."""

    batch_id: str
    provider_order: list[str]
    concurrency: int
    template: Optional[PromptTemplate]
    sink: Optional[ProgressSink]
    cancel_event: asyncio.Event
    total: int
    captions_only: bool = False
    completed: int = 0
    succeeded: int = 0

    @property
    def progress(self) -> int:
        if not self.total:
            return 100
        return int(self.completed / self.total * 100)


@dataclass
class _Job:
    item_id: str
    load: Callable[[], Awaitable[WorkItem]] = field(repr=False)
    title: str = ""
    from_source: bool = False


def _preloaded(item: WorkItem) -> Callable[[], Awaitable[WorkItem]]:
    async def load() -> WorkItem:
        return item

    return load


async def _fetch_item(source: ContentSource, item_id: str) -> WorkItem:
    content = await source.fetch(item_id)
    return WorkItem(id=item_id, title=content.title, raw_text=content.raw_text)


class BatchDispatcher:
    """
    Concurrent, fault-isolated processing of a batch of items.

    Attributes:
        pool: Providers (with their shared limiters and gates)
        orchestrator: Per-item provider fallback
        template: Default prompt template for batches that pass none
    """

    def __init__(
        self,
        pool: ProviderPool,
        orchestrator: Optional[FallbackOrchestrator] = None,
        template: Optional[PromptTemplate] = None,
    ) -> None:
        self.pool = pool
        self.orchestrator = orchestrator or FallbackOrchestrator(pool)
        self.template = template

    # =========================================================================
    # Public API
    # =========================================================================

    def process_batch(
        self,
        items: Iterable[WorkItem],
        provider_order: Optional[list[str]] = None,
        batch_concurrency: Optional[int] = None,
        template: Optional[PromptTemplate] = None,
        sink: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
        batch_id: Optional[str] = None,
        captions_only: bool = False,
    ) -> AsyncIterator[Result]:
        """
        Start a batch over items whose text is already known.

        Raises:
            ConfigurationError: No usable provider, unknown provider name,
                duplicate item ids or an invalid batch concurrency
            TemplateError: Prompt template is invalid or unreadable
        """
        jobs = [_Job(item.id, _preloaded(item), title=item.title) for item in items]
        plan = self._plan(
            jobs,
            provider_order=provider_order,
            batch_concurrency=batch_concurrency,
            template=template,
            sink=sink,
            cancel_event=cancel_event,
            batch_id=batch_id,
            captions_only=captions_only,
        )
        return self._run(plan, jobs)

    def process_ids(
        self,
        item_ids: Iterable[str],
        source: ContentSource,
        provider_order: Optional[list[str]] = None,
        batch_concurrency: Optional[int] = None,
        template: Optional[PromptTemplate] = None,
        sink: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
        batch_id: Optional[str] = None,
        captions_only: bool = False,
    ) -> AsyncIterator[Result]:
        """
        Start a batch that fetches each item's content from a source.

        Content is fetched inside the item's batch slot. A failed fetch
        yields a SOURCE_FETCH_FAILED Result and no provider is called.
        With captions_only the fetched text is the Result.
        """
        jobs = [
            _Job(item_id, partial(_fetch_item, source, item_id), from_source=True)
            for item_id in item_ids
        ]
        plan = self._plan(
            jobs,
            provider_order=provider_order,
            batch_concurrency=batch_concurrency,
            template=template,
            sink=sink,
            cancel_event=cancel_event,
            batch_id=batch_id,
            captions_only=captions_only,
        )
        return self._run(plan, jobs)

    async def run_batch(self, items: Iterable[WorkItem], **kwargs) -> BatchSummary:
        """Process a whole batch and collect its Results by item id."""
        items = list(items)
        summary = BatchSummary()
        async with aclosing(self.process_batch(items, **kwargs)) as results:
            async for result in results:
                summary.results[result.item_id] = result
        summary.cancelled = summary.total < len(items)
        logger.info(f"Batch finished: {summary.describe()}")
        return summary

    # =========================================================================
    # Batch execution
    # =========================================================================

    def _plan(
        self,
        jobs: list[_Job],
        provider_order: Optional[list[str]],
        batch_concurrency: Optional[int],
        template: Optional[PromptTemplate],
        sink: Optional[ProgressSink],
        cancel_event: Optional[asyncio.Event],
        batch_id: Optional[str],
        captions_only: bool,
    ) -> _BatchPlan:
        counts = Counter(job.item_id for job in jobs)
        duplicates = sorted(item_id for item_id, n in counts.items() if n > 1)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate item ids in batch: {', '.join(duplicates)}",
                status_code=422,
            )

        if batch_concurrency is not None and batch_concurrency < 1:
            raise ConfigurationError(
                f"batch_concurrency must be >= 1, got {batch_concurrency}",
                status_code=422,
            )

        # Captions-only batches never reach a provider, so they need neither
        # credentials nor a prompt template.
        if captions_only:
            order: list[str] = []
        else:
            order = self.pool.resolve_order(provider_order)
            template = template or self.template or get_default_template()

        return _BatchPlan(
            batch_id=batch_id or uuid4().hex[:8],
            provider_order=order,
            concurrency=batch_concurrency or self.pool.default_batch_concurrency(order),
            template=template,
            sink=sink,
            cancel_event=cancel_event or asyncio.Event(),
            total=len(jobs),
            captions_only=captions_only,
        )

    async def _run(self, plan: _BatchPlan, jobs: list[_Job]) -> AsyncIterator[Result]:
        mode = "captions only" if plan.captions_only else f"providers={plan.provider_order}"
        logger.info(
            f"Batch {plan.batch_id}: {plan.total} items, {mode}, concurrency={plan.concurrency}"
        )
        queue: asyncio.Queue[Result] = asyncio.Queue()
        slots = asyncio.Semaphore(plan.concurrency)
        tasks = [asyncio.create_task(self._run_job(plan, job, slots, queue)) for job in jobs]
        status = ProgressEventType.BATCH_COMPLETED
        message = ""

        try:
            while plan.completed < plan.total:
                result = await self._next_result(queue, plan.cancel_event)
                if result is None:
                    status = ProgressEventType.BATCH_CANCELLED
                    break

                plan.completed += 1
                if result.success:
                    plan.succeeded += 1
                await self._publish(plan, self._item_event(plan, result))
                yield result
        except (asyncio.CancelledError, GeneratorExit):
            status = ProgressEventType.BATCH_CANCELLED
            raise
        except Exception as e:
            status = ProgressEventType.BATCH_FAILED
            message = f"Batch failed: {type(e).__name__}: {e}"
            logger.error(f"Batch {plan.batch_id}: {message}", exc_info=True)
            raise
        finally:
            if status != ProgressEventType.BATCH_COMPLETED:
                plan.cancel_event.set()
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            if status == ProgressEventType.BATCH_COMPLETED:
                message = f"{plan.succeeded} of {plan.total} items succeeded"
            elif status == ProgressEventType.BATCH_CANCELLED:
                message = f"Cancelled after {plan.completed} of {plan.total} items"
            logger.info(f"Batch {plan.batch_id}: {message}")
            await self._publish(
                plan,
                ProgressEvent(
                    event=status,
                    batch_id=plan.batch_id,
                    completed=plan.completed,
                    total=plan.total,
                    progress=plan.progress,
                    message=message,
                ),
            )

    async def _next_result(
        self,
        queue: "asyncio.Queue[Result]",
        cancel_event: asyncio.Event,
    ) -> Optional[Result]:
        """Wait for the next Result, or return None once cancelled."""
        if cancel_event.is_set():
            return None

        get_task = asyncio.ensure_future(queue.get())
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {get_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_task, cancel_task):
                if not task.done():
                    task.cancel()

        if cancel_task in done:
            return None
        return get_task.result()

    async def _run_job(
        self,
        plan: _BatchPlan,
        job: _Job,
        slots: asyncio.Semaphore,
        queue: "asyncio.Queue[Result]",
    ) -> None:
        async with slots:
            result = await self._process_job(plan, job)
        if result is not None:
            await queue.put(result)

    async def _process_job(self, plan: _BatchPlan, job: _Job) -> Optional[Result]:
        """Produce the Result of one item, or None if the batch was cancelled."""
        if plan.cancel_event.is_set():
            return None

        await self._report_item(plan, ProgressEventType.ITEM_STARTED, job.item_id, job.title)
        try:
            item = await job.load()
        except Exception as e:
            logger.warning(f"Item {job.item_id}: content fetch failed: {e}")
            return Result(
                item_id=job.item_id,
                content="",
                success=False,
                error_kind=ErrorKind.SOURCE_FETCH_FAILED,
                error_message=str(e),
            )
        if job.from_source:
            await self._report_item(plan, ProgressEventType.ITEM_FETCHED, item.id, item.title)

        if plan.captions_only:
            return Result(
                item_id=item.id,
                title=item.title,
                content=fallback_content(item.title, item.raw_text),
                success=True,
            )

        try:
            return await self.orchestrator.generate(
                item,
                plan.provider_order,
                plan.template,
                on_retry=partial(self._report_retry, plan, item),
                cancel_event=plan.cancel_event,
            )
        except BatchCancelledError:
            logger.debug(f"Item {item.id}: cancelled before invocation")
            return None
        except Exception as e:
            logger.error(f"Item {item.id}: unexpected error: {e}", exc_info=True)
            return Result(
                item_id=item.id,
                title=item.title,
                content=fallback_content(item.title, item.raw_text),
                success=False,
                error_kind=ErrorKind.UNKNOWN,
                error_message=f"{type(e).__name__}: {e}",
            )

    # =========================================================================
    # Progress
    # =========================================================================

    def _item_event(self, plan: _BatchPlan, result: Result) -> ProgressEvent:
        name = result.title or result.item_id
        if not result.success:
            message = f"Failed to generate notes for {name}"
        elif result.provider_used:
            message = f"Generated notes for {name} via {result.provider_used}"
        else:
            message = f"Captions ready for {name}"
        return ProgressEvent(
            event=ProgressEventType.ITEM_COMPLETED,
            batch_id=plan.batch_id,
            completed=plan.completed,
            total=plan.total,
            progress=plan.progress,
            message=message,
            item_id=result.item_id,
            title=result.title,
            success=result.success,
            provider_used=result.provider_used,
            error_kind=result.error_kind,
            error_message=result.error_message,
            content=result.content,
        )

    async def _report_item(
        self,
        plan: _BatchPlan,
        event: ProgressEventType,
        item_id: str,
        title: str,
    ) -> None:
        name = title or item_id
        if event == ProgressEventType.ITEM_FETCHED:
            message = f"Fetched captions for {name}"
        elif plan.captions_only:
            message = f"Fetching captions for {name}"
        else:
            message = f"Processing {name}"
        await self._publish(
            plan,
            ProgressEvent(
                event=event,
                batch_id=plan.batch_id,
                completed=plan.completed,
                total=plan.total,
                progress=plan.progress,
                message=message,
                item_id=item_id,
                title=title or None,
            ),
        )

    async def _report_retry(self, plan: _BatchPlan, item: WorkItem, attempt: RetryAttempt) -> None:
        await self._publish(
            plan,
            ProgressEvent(
                event=ProgressEventType.ITEM_RETRYING,
                batch_id=plan.batch_id,
                completed=plan.completed,
                total=plan.total,
                progress=plan.progress,
                message=(
                    f"{attempt.provider} rate limited, retrying in "
                    f"{attempt.backoff_ms / 1000:.1f}s"
                ),
                item_id=item.id,
                title=item.title,
                provider_used=attempt.provider,
                attempt=attempt.attempt_number,
                backoff_ms=attempt.backoff_ms,
            ),
        )

    async def _publish(self, plan: _BatchPlan, event: ProgressEvent) -> None:
        if plan.sink is None:
            return
        try:
            await plan.sink.publish(event)
        except Exception as e:
            logger.warning(f"Batch {plan.batch_id}: progress sink failed: {e}")
