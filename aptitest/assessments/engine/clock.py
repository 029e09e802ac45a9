"""
Exam Clock

Countdown for one attempt. Expiry is delivered as a one-shot event to the
registered listeners; nothing polls the remaining time to decide when to
submit.
"""

import asyncio
import contextlib
from typing import Callable, List, Optional

from aptitest.common.logger import app_logger

logger = app_logger.getChild("engine.clock")

ExpiryCallback = Callable[[], None]
TickCallback = Callable[[int], None]


class ExamClock:
    """
    Countdown timer with pause support.

    With ``auto_tick`` the clock drives itself from an asyncio task that
    sleeps against loop-time deadlines, so slow listeners do not make it
    drift. Without it, :meth:`tick` has to be called by the owner.
    """

    def __init__(self, duration_seconds: int, tick_interval: float = 1.0, auto_tick: bool = True):
        if duration_seconds <= 0:
            raise ValueError(f"Duration must be positive, got {duration_seconds}")
        if tick_interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {tick_interval}")

        self.duration_seconds = int(duration_seconds)
        self.tick_interval = tick_interval
        self.auto_tick = auto_tick

        self._remaining = self.duration_seconds
        self._started = False
        self._running = False
        self._paused = False
        self._expired = False
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._expiry_callbacks: List[ExpiryCallback] = []
        self._tick_callbacks: List[TickCallback] = []

    # -- listeners ---------------------------------------------------------

    def on_expiry(self, callback: ExpiryCallback) -> None:
        """Register a callback fired once when the countdown reaches zero."""
        self._expiry_callbacks.append(callback)

    def on_tick(self, callback: TickCallback) -> None:
        """Register a callback fired after every tick with the remaining seconds."""
        self._tick_callbacks.append(callback)

    # -- state -------------------------------------------------------------

    def remaining_seconds(self) -> int:
        return self._remaining

    def elapsed_seconds(self) -> int:
        return self.duration_seconds - self._remaining

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_expired(self) -> bool:
        return self._expired

    # -- control -----------------------------------------------------------

    def start(self) -> None:
        """
        Start the countdown.

        Raises:
            RuntimeError: If the clock was already started, or ``auto_tick``
                is set and no event loop is running
        """
        if self._started:
            raise RuntimeError("Clock already started")
        self._started = True
        self._running = True
        self._schedule()
        logger.debug(f"Clock started with {self._remaining}s remaining")

    def pause(self) -> None:
        if not self._running or self._paused:
            return
        self._paused = True
        self._cancel_task()
        logger.debug(f"Clock paused with {self._remaining}s remaining")

    def resume(self) -> None:
        if not self._running or not self._paused:
            return
        self._paused = False
        self._schedule()
        logger.debug(f"Clock resumed with {self._remaining}s remaining")

    def stop(self) -> None:
        """Stop the countdown without firing expiry."""
        self._running = False
        self._paused = False
        self._cancel_task()

    async def aclose(self) -> None:
        """Stop the clock and wait for its task to finish."""
        task = self._task
        self.stop()
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def tick(self) -> bool:
        """
        Advance the countdown by one second.

        Returns:
            True if the tick was counted, False while stopped, paused or
            expired
        """
        if not self._running or self._paused or self._expired:
            return False

        self._remaining = max(0, self._remaining - 1)

        for callback in list(self._tick_callbacks):
            try:
                callback(self._remaining)
            except Exception:
                logger.exception("Tick listener failed")

        if self._remaining == 0:
            self._expire()
        return True

    # -- internals ---------------------------------------------------------

    def _expire(self) -> None:
        # Flag first so listeners that stop the clock cannot re-enter
        self._expired = True
        self._running = False
        self._cancel_task()
        logger.info("Clock expired")

        for callback in list(self._expiry_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Expiry listener failed")

    def _schedule(self) -> None:
        if not self.auto_tick:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(self._generation))

    def _cancel_task(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # The task ends on its own when a tick listener stops the clock
        if task is not current:
            task.cancel()

    async def _run(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.tick_interval
        while generation == self._generation:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            if generation != self._generation:
                break
            self.tick()
            deadline += self.tick_interval
