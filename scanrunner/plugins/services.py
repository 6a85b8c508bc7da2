"""Per-invocation services handed to a plugin: scoped logger and event sink."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from scanrunner.models.model_event import Event
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.reporting.report_service import ReportService

logger = logging.getLogger(__name__)

# Keys plugins may use in their event payloads, mapped to Event fields
_PAYLOAD_FIELDS = {
    "level": "level",
    "Level": "level",
    "detect_type": "detect_type",
    "DetectType": "detect_type",
    "event_type": "event_type",
    "EventType": "event_type",
    "alert_type": "alert_type",
    "AlertType": "alert_type",
    "detail": "detail",
    "AlertDetails": "detail",
}


class PluginLogger(logging.LoggerAdapter):
    """Logger adapter prefixing records with plugin name and command path."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"[{self.extra['plugin']}:{self.extra['command']}] {msg}", kwargs


class EventSink:
    """Turns raw plugin payloads into Events and publishes them."""

    def __init__(
        self,
        service: ReportService,
        plugin: PluginDescriptor,
        command: PluginCommand,
        image: ImageHandle,
        cancelled: asyncio.Event | None = None,
    ):
        self._service = service
        self._plugin = plugin
        self._command = command
        self._image = image
        self._cancelled = cancelled

    def build_event(self, payload: dict[str, Any]) -> Event:
        """Stamp plugin, command and image onto a payload.

        Unknown payload keys are kept in `detail`.

        Raises:
            ValidationError: If a known field has an invalid value
        """
        fields: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in payload.items():
            target = _PAYLOAD_FIELDS.get(key)
            if target is None:
                extra[key] = value
            else:
                fields[target] = value

        detail = fields.get("detail")
        if not isinstance(detail, dict):
            detail = {} if detail is None else {"value": detail}
        fields["detail"] = {**detail, **extra}

        return Event(
            plugin=self._plugin.name,
            command=self._command.joined_path,
            image_id=self._image.id,
            image_ref=self._image.ref,
            **fields,
        )

    def emit(self, payload: dict[str, Any]) -> Event | None:
        """Publish a payload as an Event.

        Payloads emitted after session cancellation, or that fail
        validation, are logged and dropped.

        Returns:
            The published Event, or None if it was dropped
        """
        if self._cancelled is not None and self._cancelled.is_set():
            logger.debug(f"Session cancelled, dropping event from {self._plugin.name}")
            return None

        try:
            event = self.build_event(payload)
        except ValidationError as e:
            logger.warning(f"Invalid event from {self._plugin.name}: {e.error_count()} errors")
            logger.debug(f"Invalid payload from {self._plugin.name}: {payload!r} ({e})")
            return None

        if not self._service.report(event):
            return None
        return event


@dataclass(frozen=True)
class ServiceBundle:
    """Services bound into one plugin invocation."""

    logger: logging.LoggerAdapter
    sink: EventSink


def build_services(
    service: ReportService,
    plugin: PluginDescriptor,
    command: PluginCommand,
    image: ImageHandle,
    cancelled: asyncio.Event | None = None,
) -> ServiceBundle:
    """Construct the service bundle for one plugin invocation."""
    plugin_logger = PluginLogger(
        logging.getLogger(f"scanrunner.plugin.{plugin.name}"),
        {"plugin": plugin.name, "command": command.joined_path},
    )
    sink = EventSink(service, plugin, command, image, cancelled=cancelled)
    return ServiceBundle(logger=plugin_logger, sink=sink)
