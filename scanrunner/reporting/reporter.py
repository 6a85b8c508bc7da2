"""Report accumulation, serialization and exit decision."""

import logging
from pathlib import Path
from typing import TextIO

from scanrunner.exceptions import ReportError
from scanrunner.models.common import _utc_now
from scanrunner.models.model_event import Event, Report

logger = logging.getLogger(__name__)


class Reporter:
    """Accumulates events into an ordered report.

    The report has a single writer: `add_event`, driven by the EventBridge.
    Reading it (`write`, `write_file`, `exit_code`) is only allowed after
    `seal()`, which the bridge calls once it has drained.
    """

    def __init__(self, indent: int = 2) -> None:
        self._indent = indent
        self._report = Report()
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def events(self) -> list[Event]:
        """Copy of the events received so far."""
        return list(self._report.events)

    def add_event(self, event: Event) -> None:
        """Append an event to the report.

        Raises:
            ReportError: If the report has already been sealed
        """
        if self._sealed:
            raise ReportError("Report is sealed, no further events accepted")
        self._report.events.append(event)
        logger.debug(f"Event from {event.plugin} on {event.image_ref or event.image_id}")

    def add_target(self, target: str) -> None:
        """Record a scanned image or repository in the report metadata."""
        if self._sealed:
            raise ReportError("Report is sealed, no further targets accepted")
        if target not in self._report.targets:
            self._report.targets.append(target)

    def seal(self) -> None:
        """Close the report for writing. Idempotent."""
        if not self._sealed:
            self._report.finished_at = _utc_now()
            self._sealed = True
            logger.debug(f"Report sealed with {len(self._report.events)} events")

    def _require_sealed(self) -> None:
        if not self._sealed:
            raise ReportError("Report is still receiving events, stop the event bridge first")

    def render(self) -> str:
        """Serialize the report as JSON."""
        self._require_sealed()
        return self._report.model_dump_json(indent=self._indent)

    def write(self, stream: TextIO) -> None:
        """Write the report to a text stream.

        Raises:
            ReportError: If the report is not sealed yet
        """
        content = self.render()
        stream.write(content)
        stream.write("\n")
        stream.flush()

    def write_file(self, path: Path | str) -> bool:
        """Write the report to a file, creating or overwriting it.

        I/O failures are logged and reported through the return value so
        that the exit decision can still be evaluated.

        Args:
            path: Destination file path

        Returns:
            True if the file was written, False otherwise
        """
        content = self.render()
        output_path = Path(path)
        try:
            output_path.write_text(content + "\n", encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write report to {output_path}: {e}")
            return False

        logger.info(f"Report written to {output_path}")
        return True

    def exit_code(self, requested: int) -> int:
        """Map the requested exit code to the process exit code.

        Returns 0 when the requested code is 0 or the report is empty,
        otherwise the requested code.
        """
        self._require_sealed()
        if requested == 0 or not self._report.events:
            return 0
        return requested
