"""Trailing-edge debounce backed by a single cancellable asyncio task."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Runs ``action`` once ``delay`` seconds after the most recent trigger.

    Each trigger cancels the pending timer and starts a new one, so a burst of
    triggers results in a single call. Once the delay has elapsed the action is
    no longer cancellable by a new trigger; the new trigger schedules another run.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]], name: str = "debounce"):
        self.delay = delay
        self._action = action
        self._name = name
        self._timer: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        """(Re)start the timer. Must be called from inside the event loop."""
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_run())

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Cancel the timer and run the action now."""
        self.cancel()
        await self._action()

    async def wait_idle(self) -> None:
        """Wait for any started action to finish."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def _wait_then_run(self) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
        # Past this point a new trigger must not cancel the write in progress
        self._timer = None
        try:
            await self._action()
        except Exception as e:
            logger.error(f"[{self._name}] debounced action failed: {e}", exc_info=True)
        finally:
            if task is not None:
                self._running.discard(task)
