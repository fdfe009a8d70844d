import asyncio
from typing import Optional

from metrowatch.config import logger
from metrowatch.core.store import ReportStore
from metrowatch.core.subscription import ChangeSubscription


class ChangeReconciler:
    """Applies a subscription's change events to a store, one at a time.

    Each event is projected before the next one is read, in delivery order,
    with no batching.
    """

    def __init__(self, store: ReportStore):
        self.store = store
        self.subscription: Optional[ChangeSubscription] = None
        self.task: Optional[asyncio.Task] = None
        self.applied = 0
        self.received = 0

    def apply(self, payload) -> bool:
        self.received += 1
        changed = self.store.apply_change(payload)
        if changed:
            self.applied += 1
        return changed

    async def run(self, subscription: ChangeSubscription):
        logger.info(f"Reconciling changes from '{subscription.topic}'")
        async for payload in subscription:
            try:
                self.apply(payload)
            except Exception as e:
                logger.error(f"Error projecting change from '{subscription.topic}': {str(e)}")
        logger.info(f"Change stream '{subscription.topic}' ended after {self.received} events")

    def start(self, subscription: ChangeSubscription) -> asyncio.Task:
        self.subscription = subscription
        self.task = asyncio.create_task(self.run(subscription))
        return self.task

    async def stop(self):
        if self.subscription is not None:
            self.subscription.release()
        if self.task is not None and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        self.task = None
