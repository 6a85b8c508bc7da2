"""Producer side of the event stream plugins publish findings to."""

import asyncio
import logging

from scanrunner.models.model_event import Event

logger = logging.getLogger(__name__)


class ReportService:
    """Queue of events emitted by plugin invocations.

    Plugins publish through their EventSink; the EventBridge consumes
    `events` and forwards each item to the Reporter. Once closed, further
    events are dropped.
    """

    def __init__(self) -> None:
        self.events: asyncio.Queue[Event] = asyncio.Queue()
        self._closed = False
        self.published = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def report(self, event: Event) -> bool:
        """Publish an event.

        Args:
            event: Event to publish

        Returns:
            True if the event was queued, False if the service is closed
        """
        if self._closed:
            self.dropped += 1
            logger.warning(
                f"Dropping event from {event.plugin} ({event.command}): report service is closed"
            )
            return False

        self.events.put_nowait(event)
        self.published += 1
        return True

    def close(self) -> None:
        """Stop accepting events. Already queued events stay queued."""
        if not self._closed:
            logger.debug(f"Report service closed after {self.published} events")
        self._closed = True
