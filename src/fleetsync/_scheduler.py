"""Cancellable periodic timers on the asyncio loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run *callback* every *interval* seconds until cancelled.

    ``cancel()`` is synchronous: once it returns, the callback will not be
    invoked again by the cancelled run. A callback that raises is logged and
    the timer keeps running, so one bad tick cannot silently stop the
    schedule.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[None] | None],
        *,
        name: str = "periodic",
        immediate: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._name = name
        self._immediate = immediate
        self._task: asyncio.Task[None] | None = None
        self._generation = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the timer on the running loop; restarts if already running."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation), name=self._name)
        _logger.debug("Timer started name=%s interval=%.3fs", self._name, self._interval)

    def cancel(self) -> None:
        task = self._task
        self._task = None
        self._generation += 1
        if task is None or task.done():
            return
        # A callback may stop its own timer; let it finish instead of
        # interrupting whatever it is awaiting. The generation bump stops
        # the loop afterwards.
        if task is not asyncio.current_task():
            task.cancel()
        _logger.debug("Timer cancelled name=%s", self._name)

    async def _invoke(self) -> None:
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.warning("Timer callback failed name=%s", self._name, exc_info=True)

    async def _run(self, generation: int) -> None:
        if self._immediate:
            await self._invoke()
        while generation == self._generation:
            await asyncio.sleep(self._interval)
            if generation != self._generation:
                return
            await self._invoke()
