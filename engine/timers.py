"""
Cancellable interval timers for turn and item-phase countdowns.

A timer fires its callback every ``interval`` seconds on the running asyncio
loop until cancelled. Each ``start``/``cancel`` bumps a generation counter and
a tick only fires when its generation is still current, so a timer that was
cancelled (or restarted) while a sleep was in flight never reaches the
callback.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CountdownTimer:
    """Repeating one-second tick driver owned by ``TurnScheduler``."""

    def __init__(self, callback: Callable[[], None], interval: float = 1.0, name: str = "timer"):
        self.callback = callback
        self.interval = interval
        self.name = name
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> int:
        """
        (Re)start ticking. Must be called from inside a running event loop.

        Returns:
            Generation token of the new run
        """
        self.cancel()
        generation = self._generation
        self._task = asyncio.get_running_loop().create_task(self._run(generation))
        return generation

    def cancel(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if generation != self._generation:
                logger.warning(f"Stale {self.name} tick ignored (generation {generation} != {self._generation})")
                return
            try:
                self.callback()
            except Exception as e:
                logger.error(f"{self.name} callback failed: {e}", exc_info=True)


TimerFactory = Callable[[Callable[[], None], str], CountdownTimer]


def default_timer_factory(callback: Callable[[], None], name: str) -> CountdownTimer:
    return CountdownTimer(callback, interval=1.0, name=name)
