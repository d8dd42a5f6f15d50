"""
Fallback Orchestrator

Produces exactly one Result per WorkItem by trying providers in priority
order. The first provider that returns text wins; a provider that fails
(retries exhausted or a non-retryable error) hands over to the next one at
once. When every provider has failed the item still gets a Result: a
degraded one, success=False, whose content is the title heading followed by
the raw text.

Nothing except cancellation escapes generate().

Usage:
    orchestrator = FallbackOrchestrator(pool)
    result = await orchestrator.generate(item, ["groq", "gemini"])
"""

import asyncio
import logging
from typing import Optional

from notesynth.enums.dispatch import ErrorKind
from notesynth.models.dispatch import Result, WorkItem, fallback_content
from notesynth.services.dispatch.pool import ProviderPool
from notesynth.services.dispatch.retry import RetryCallback, RetryController
from notesynth.services.errors import BatchCancelledError, DispatchError
from notesynth.services.prompts import PromptTemplate, get_default_template

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    """Priority-ordered provider fallback for a single item."""

    def __init__(
        self,
        pool: ProviderPool,
        retry_controller: Optional[RetryController] = None,
    ) -> None:
        self.pool = pool
        self.retry_controller = retry_controller or RetryController()

    async def generate(
        self,
        item: WorkItem,
        provider_order: list[str],
        template: Optional[PromptTemplate] = None,
        *,
        on_retry: Optional[RetryCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result:
        """
        Generate notes for one item.

        Raises:
            BatchCancelledError: Cancellation observed before an invocation
        """
        template = template or get_default_template()
        prompt = template.render(item.raw_text)
        failures: list[str] = []

        for name in provider_order:
            runtime = self.pool.get(name)
            try:
                content = await self.retry_controller.call_with_retry(
                    runtime,
                    prompt,
                    on_retry=on_retry,
                    cancel_event=cancel_event,
                )
            except BatchCancelledError:
                raise
            except DispatchError as e:
                logger.warning(f"Item {item.id}: {name} failed ({e.error_kind.value}): {e.message}")
                failures.append(f"{name}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Item {item.id}: {name} failed unexpectedly: {e}", exc_info=True)
                failures.append(f"{name}: {type(e).__name__}: {e}")
                continue

            logger.info(f"Item {item.id}: notes generated by {name}")
            return Result(
                item_id=item.id,
                title=item.title,
                content=content,
                success=True,
                provider_used=name,
            )

        logger.error(f"Item {item.id}: all providers failed, returning raw text")
        return Result(
            item_id=item.id,
            title=item.title,
            content=fallback_content(item.title, item.raw_text),
            success=False,
            error_kind=ErrorKind.ALL_PROVIDERS_EXHAUSTED,
            error_message="; ".join(failures) or "No providers attempted",
        )
