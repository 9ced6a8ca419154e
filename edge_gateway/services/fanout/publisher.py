"""
State-Change Event Publishers

How the gateway hands off the events produced by successful write
operations. Publishing never affects the response of the request that
caused it.

    inline    Broadcast in a background asyncio task in this process
    celery    Queue the broadcast_event Celery task (Redis broker)
    disabled  Drop events (log only)

Version: 1.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from edge_gateway.services.fanout.base import FanoutEvent
from edge_gateway.services.fanout.broadcaster import RegionFanoutBroadcaster

logger = logging.getLogger(__name__)


class BaseEventPublisher(ABC):

    @property
    @abstractmethod
    def mode(self) -> str:
        pass

    @abstractmethod
    async def publish(self, event: FanoutEvent) -> None:
        """Hand off an event; must not raise."""
        pass

    async def drain(self) -> None:
        """Wait for in-flight publishes (used on shutdown and in tests)."""
        return None


class InlineEventPublisher(BaseEventPublisher):
    """Broadcasts in background tasks on the running event loop."""

    def __init__(self, broadcaster: RegionFanoutBroadcaster):
        self.broadcaster = broadcaster
        self._tasks: set[asyncio.Task] = set()

    @property
    def mode(self) -> str:
        return "inline"

    async def publish(self, event: FanoutEvent) -> None:
        task = asyncio.create_task(self.broadcaster.broadcast(event))
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background fanout failed: {task.exception()}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class CeleryEventPublisher(BaseEventPublisher):
    """Queues events for the Celery worker."""

    @property
    def mode(self) -> str:
        return "celery"

    async def publish(self, event: FanoutEvent) -> None:
        from edge_gateway.tasks import broadcast_event

        try:
            # delay() talks to Redis synchronously
            await asyncio.to_thread(broadcast_event.delay, event.to_dict())
        except Exception as e:
            logger.error(f"Failed to queue fanout event {event.type.value}: {e}")


class DisabledEventPublisher(BaseEventPublisher):

    @property
    def mode(self) -> str:
        return "disabled"

    async def publish(self, event: FanoutEvent) -> None:
        logger.debug(f"Fanout publishing disabled; dropped {event.type.value} event")
