import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from pulsewatch.core.entities import Alert, Item
from pulsewatch.rules.base import PulseRule, RuleContext

logger = logging.getLogger(__name__)


class RuleDispatcher:
    """
    Runs the applicable rules over a batch of items.

    Items are evaluated concurrently (bounded by `max_concurrency`); the
    rules for a single item run one after another in `order`. Alerts are
    yielded as soon as their item finishes.
    """

    def __init__(
        self,
        rules: Sequence[PulseRule],
        max_concurrency: int = 8,
        clock: str = "run",
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.rules = sorted(rules, key=lambda rule: rule.order)
        self.max_concurrency = max_concurrency
        self.clock = clock

    def rules_for(self, item: Item) -> List[PulseRule]:
        return [rule for rule in self.rules if rule.applies_to(item)]

    async def _evaluate_item(self, item: Item, ctx: RuleContext, semaphore: asyncio.Semaphore) -> List[Alert]:
        async with semaphore:
            alerts: List[Alert] = []
            for rule in self.rules_for(item):
                ctx.ensure_active()
                alert = await rule.evaluate(item, ctx)
                if alert is not None:
                    alerts.append(alert)
            return alerts

    async def dispatch(
        self,
        items: Iterable[Item],
        cancel_event: Optional[asyncio.Event] = None,
        now: Optional[datetime] = None,
    ) -> AsyncIterator[Alert]:
        """
        Evaluate `items` and yield alerts lazily.

        A fresh RuleContext (and with it a fresh lookup cache) is built for
        every call. Setting `cancel_event` stops the batch before any further
        store writes. A failing rule cancels the rest of the batch and the
        error propagates to the caller.
        """
        start = time.perf_counter()
        ctx = RuleContext(
            now=now or datetime.now(timezone.utc),
            cancel_event=cancel_event or asyncio.Event(),
            clock=self.clock,
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        batch = list(items)
        invocations = sum(len(self.rules_for(item)) for item in batch)
        logger.info(f"Dispatching {len(batch)} items ({invocations} rule invocations)")

        tasks = [asyncio.create_task(self._evaluate_item(item, ctx, semaphore)) for item in batch]
        emitted = 0

        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    alerts = await next_done
                except asyncio.CancelledError:
                    if ctx.cancelled:
                        logger.warning(f"Dispatch cancelled after {emitted} alerts")
                        return
                    raise
                for alert in alerts:
                    emitted += 1
                    yield alert
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info(
            f"Dispatch complete: items={len(batch)} alerts={emitted} "
            f"time={time.perf_counter() - start:.2f}s"
        )
