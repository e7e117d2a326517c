import asyncio
import logging
from typing import Optional, Set, Tuple

from schemas.action_status import TransactionOutcome
from schemas.intents import Intent
from services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)


class IntentChannel:
    """Queue between intent producers (HTTP, CLI, UI) and the coordinator.

    Each intent is dispatched in its own task, so two intents for the same
    campaign overlap and the coordinator's in-flight rule decides between
    them, not the queue order.
    """

    def __init__(self, coordinator: TransactionCoordinator, maxsize: int = 0):
        self.coordinator = coordinator
        self._queue: "asyncio.Queue[Tuple[Intent, asyncio.Future]]" = asyncio.Queue(maxsize)
        self._consumer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self):
        if not self.running:
            self._consumer = asyncio.create_task(self._run())

    async def send(self, intent: Intent) -> "asyncio.Future[TransactionOutcome]":
        self.start()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((intent, future))
        return future

    async def request(self, intent: Intent) -> TransactionOutcome:
        return await (await self.send(intent))

    async def _run(self):
        while True:
            intent, future = await self._queue.get()
            task = asyncio.create_task(self._dispatch(intent, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, intent: Intent, future: asyncio.Future):
        try:
            outcome = await self.coordinator.submit(intent)
        except Exception as e:
            logger.exception("Dispatching %s failed", intent.kind)
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(outcome)
        finally:
            self._queue.task_done()

    async def stop(self):
        """Wait for queued and running intents, then stop the consumer."""
        await self._queue.join()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
