"""
============================================================================
UPTIME MONITOR - PERIODIC TASKS
============================================================================
Cancellable periodic timers on the asyncio event loop.

A PeriodicTask fires its callback, waits for that fire to finish, then
sleeps its interval before the next fire. Consecutive fires of one task
are therefore never closer than the interval and never overlap.

Each fire runs as its own asyncio task, shielded from the timer loop.
Cancelling the timer stops future fires only; a fire already running
completes on its own and the pool keeps track of it until it does.
============================================================================
"""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Optional, Set

from utils.logger import get_logger


logger = get_logger(__name__)


SleepFunc = Callable[[float], Awaitable[None]]
Callback = Callable[[], Awaitable[object]]


# ============================================================================
# PERIODIC TASK
# ============================================================================

class PeriodicTask:
    """
    Handle for one periodic timer.

    Attributes
    ----------
    name : str
        Used in logs.
    interval : float
        Seconds between the end of one fire and the start of the next.
        May be changed while running; the next sleep uses the new value.
    fire_count : int
        Fires started so far.
    error_count : int
        Fires whose callback raised.
    last_fired : Optional[float]
        Pool clock reading at the start of the last fire.
    current_fire : Optional[asyncio.Task]
        The fire in progress, if any.
    """

    def __init__(
        self,
        pool: "TimerPool",
        name: str,
        interval: float,
        callback: Callback,
        initial_delay: float = 0.0,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.pool = pool
        self.name = name
        self._interval = float(interval)
        self._callback = callback
        self._initial_delay = max(0.0, float(initial_delay))

        self.fire_count = 0
        self.error_count = 0
        self.last_fired: Optional[float] = None
        self.current_fire: Optional[asyncio.Task] = None

        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        if value <= 0:
            raise ValueError("interval must be positive")
        self._interval = float(value)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def loop_task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"Periodic task '{self.name}' already started")
        self._task = asyncio.create_task(self._run(), name=f"timer:{self.name}")

    def cancel(self) -> None:
        """Prevent any further fires. Does not touch a fire in progress."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        sleep = self.pool.sleep

        if self._initial_delay > 0:
            await sleep(self._initial_delay)

        while not self._cancelled:
            self.fire_count += 1
            self.last_fired = self.pool.clock()

            fire = asyncio.ensure_future(self._callback())
            self.current_fire = fire
            self.pool.track(fire)

            try:
                # cancelling this timer must not cancel the fire itself
                await asyncio.shield(fire)
            except Exception:
                self.error_count += 1
                logger.exception(f"[Timer] '{self.name}' callback failed")
            finally:
                if fire.done():
                    self.current_fire = None

            if self._cancelled:
                break

            await sleep(self._interval)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<PeriodicTask {self.name!r} every {self._interval}s {state} fires={self.fire_count}>"


# ============================================================================
# TIMER POOL
# ============================================================================

class TimerPool:
    """
    Creates periodic tasks and tracks every fire still in flight.

    Parameters
    ----------
    sleep : callable, optional
        Coroutine function used for all waits. Defaults to
        ``asyncio.sleep``; tests pass a compressed clock.
    clock : callable, optional
        Monotonic time source in the same unit as ``sleep``. Defaults to
        ``time.monotonic``.
    """

    def __init__(self, sleep: Optional[SleepFunc] = None, clock: Optional[Callable[[], float]] = None):
        self.sleep: SleepFunc = sleep or asyncio.sleep
        self.clock: Callable[[], float] = clock or time.monotonic
        self._in_flight: Set[asyncio.Future] = set()

    def schedule(
        self,
        interval: float,
        callback: Callback,
        name: str = "periodic",
        initial_delay: float = 0.0,
    ) -> PeriodicTask:
        """Create and start a periodic task; returns its handle."""
        task = PeriodicTask(self, name, interval, callback, initial_delay=initial_delay)
        task.start()
        logger.debug(f"[Timer] scheduled '{name}' every {interval}s (first in {initial_delay}s)")
        return task

    @staticmethod
    def cancel(handle: Optional[PeriodicTask]) -> bool:
        """Cancel a handle. Returns False when there was nothing to cancel."""
        if handle is None or handle.cancelled:
            return False
        handle.cancel()
        return True

    def track(self, fire: asyncio.Future) -> None:
        self._in_flight.add(fire)
        fire.add_done_callback(self._in_flight.discard)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @staticmethod
    async def wait_closed(handles: Iterable[PeriodicTask]) -> None:
        """Wait until the timer loops of cancelled handles have exited."""
        tasks = [h.loop_task for h in handles if h.loop_task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for fires still in flight.

        Returns
        -------
        int
            Fires still running when the timeout expired.
        """
        pending = set(self._in_flight)
        if not pending:
            return 0

        logger.info(f"[Timer] waiting for {len(pending)} in-flight check(s)")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"[Timer] {len(still_running)} check(s) still running after {timeout}s")
        return len(still_running)
