"""
Keep-alive supervisor.

Periodically checks when the server was last heard from and tears the
session down once it has been silent for longer than the timeout.
"""

import asyncio
import time
from typing import Callable

from sneakytunnel.utils.logger import get_logger

logger = get_logger(__name__)


class KeepAliveSupervisor:
    """Fixed-interval liveness check driven by an asyncio task."""

    def __init__(
        self,
        get_last_activity: Callable[[], float | None],
        on_timeout: Callable[[], None],
        interval: float = 15.0,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize supervisor.

        Args:
            get_last_activity: Returns the clock() value of the last server
                packet, or None if nothing arrived yet.
            on_timeout: Called once when the server is considered dead.
            interval: Seconds between checks.
            timeout: Silence, in seconds, after which on_timeout fires.
            clock: Monotonic time source, same one used for last activity.
        """
        self._get_last_activity = get_last_activity
        self._on_timeout = on_timeout
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._started_at: float | None = None
        self._checks = 0
        self.fired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._started_at = self._clock()
        self._task = asyncio.create_task(self._run(), name="keepalive-supervisor")

    def stop(self) -> None:
        """Cancel the check loop. Idempotent."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def check(self) -> bool:
        """
        Run one liveness check.

        Returns:
            True if the timeout fired on this check.
        """
        if self.fired:
            return False

        self._checks += 1
        last = self._get_last_activity()
        if last is None:
            # Only the first check may find the server silent since start
            if self._checks == 1 or self._started_at is None:
                return False
            last = self._started_at

        silence = self._clock() - last
        if silence <= self.timeout:
            return False

        logger.warning(
            f"No packet from server for {silence:.1f}s "
            f"(timeout {self.timeout:.1f}s)"
        )
        self.fired = True
        self._on_timeout()
        return True

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                if self.check():
                    return
        except asyncio.CancelledError:
            logger.debug("Keep-alive supervisor cancelled")
            raise
