"""
In-flight coalescing for coroutines.
Concurrent callers asking for the same key share one execution and its outcome.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Any
import logging

logger = logging.getLogger(__name__)


class RequestCoalescer:
    """
    Coalesces concurrent awaits on the same key.
    Only the first caller starts func(); others await the same task.
    The key is released as soon as the task finishes, so a later episode starts fresh.
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_execute(self, key: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Start func() if nothing is running for key, otherwise join the running one.

        Args:
            key: Identifier of the shared operation (e.g. "refresh")
            func: Coroutine factory; called at most once per episode

        Returns:
            Result of func()

        Raises:
            Exception: Whatever func() raised, re-raised in every waiter
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            logger.debug(f"Joining in-flight operation '{key}'")
        # shield: a cancelled waiter must not cancel the operation other callers are waiting on
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Consume the exception so an unobserved failure is not reported as "never retrieved".
        if not task.cancelled():
            task.exception()
