"""
Status/log event stream.

Sessions publish human readable status lines here instead of touching
any display state. Consumers subscribe to get an asyncio.Queue of
StatusEvent objects; a bounded history keeps the recent log for late
subscribers.
"""

import asyncio
from collections import deque

from sneakytunnel.models.config import StatusEvent
from sneakytunnel.models.enums import ConnectionStatus
from sneakytunnel.utils.logger import get_logger

logger = get_logger(__name__)


class EventStream:
    """Fan-out channel of StatusEvent objects."""

    def __init__(self, history: int = 200):
        self.history: deque[StatusEvent] = deque(maxlen=history)
        self.status = ConnectionStatus.DISCONNECTED
        self._subscribers: list[asyncio.Queue] = []

    def emit(
        self,
        message: str,
        status: ConnectionStatus | None = None,
        level: str = "info",
    ) -> StatusEvent:
        """
        Publish a status line.

        Args:
            message: Text shown to the user.
            status: New coarse status; unchanged if None.
            level: loguru level name used when logging the line.
        """
        if status is not None:
            self.status = status

        event = StatusEvent(message=message, status=self.status, level=level)
        self.history.append(event)
        logger.log(level.upper(), message)

        for queue in self._subscribers:
            queue.put_nowait(event)
        return event

    def subscribe(self) -> asyncio.Queue:
        """Get a queue receiving every event emitted from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)


def format_event(event: StatusEvent) -> str:
    """Render an event as '[HH:MM:SS] message'."""
    return event.format()
