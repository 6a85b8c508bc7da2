"""Relay between the report service and the reporter."""

import asyncio
import contextlib
import logging

from scanrunner.exceptions import ReportError
from scanrunner.models.model_event import Event
from scanrunner.reporting.report_service import ReportService
from scanrunner.reporting.reporter import Reporter

logger = logging.getLogger(__name__)


class EventBridge:
    """Forwards events from a ReportService into a Reporter.

    Lifecycle:
    - start(): spawn the relay task, before the first image is scanned
    - stop(): close the service, wait until every queued event has been
      forwarded, cancel the relay and seal the reporter

    The reporter cannot be serialized until stop() has returned.
    """

    def __init__(self, service: ReportService, reporter: Reporter):
        self._service = service
        self._reporter = reporter
        self._task: asyncio.Task | None = None
        self._stopped = False
        self.forwarded = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """Start the relay task.

        Raises:
            ReportError: If the bridge was already started or stopped
        """
        if self._stopped:
            raise ReportError("Event bridge was stopped and cannot be restarted")
        if self._task is not None:
            raise ReportError("Event bridge already started")

        self._task = asyncio.create_task(self._relay(), name="event-bridge")
        logger.debug("Event bridge started")

    def _forward(self, event: Event) -> None:
        try:
            self._reporter.add_event(event)
            self.forwarded += 1
        except Exception as e:
            logger.error(f"Failed to forward event from {event.plugin}: {e}")

    async def _relay(self) -> None:
        queue = self._service.events
        while True:
            event = await queue.get()
            try:
                self._forward(event)
            finally:
                queue.task_done()

    def _drain_remaining(self) -> None:
        """Forward queued events synchronously when no relay task is alive."""
        queue = self._service.events
        while not queue.empty():
            event = queue.get_nowait()
            try:
                self._forward(event)
            finally:
                queue.task_done()

    async def stop(self) -> None:
        """Stop the bridge once every in-flight event has been forwarded.

        Idempotent. Seals the reporter on return.
        """
        if self._stopped:
            return

        self._service.close()

        if self.running:
            await self._service.events.join()
        else:
            self._drain_remaining()

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        self._stopped = True
        self._reporter.seal()
        logger.debug(f"Event bridge stopped after forwarding {self.forwarded} events")
