"""Scan session: the state shared by every component of one command run."""

import asyncio
import logging
from pathlib import Path
from typing import TextIO

from scanrunner.consts import DEFAULT_THREADS
from scanrunner.models.model_scanner import ImageHandle, ScanSummary
from scanrunner.plugins.plugin_host import PluginHost
from scanrunner.plugins.plugin_set import PluginSet
from scanrunner.reporting.event_bridge import EventBridge
from scanrunner.reporting.report_service import ReportService
from scanrunner.reporting.reporter import Reporter
from scanrunner.scanner.scan_executor import ExecInterceptor, ScanExecutor

logger = logging.getLogger(__name__)


class ScanSession:
    """Owns plugin set, cancellation signal, report service, bridge and reporter.

    Usage:
        async with ScanSession(plugins) as session:
            await session.scan(image)
        session.finalize(sys.stdout, "report.json")
        code = session.exit_code(requested)

    Entering starts the event bridge; leaving stops and drains it, which
    seals the reporter. finalize() and exit_code() are only valid after
    the context has been left.
    """

    def __init__(
        self,
        plugins: PluginSet,
        host: PluginHost | None = None,
        threads: int = DEFAULT_THREADS,
        reporter: Reporter | None = None,
        interceptor: ExecInterceptor | None = None,
    ):
        self.plugins = plugins
        self.cancelled = asyncio.Event()
        self.report_service = ReportService()
        self.reporter = reporter or Reporter()
        self.bridge = EventBridge(self.report_service, self.reporter)
        self.executor = ScanExecutor(
            plugins,
            host or PluginHost(),
            self.report_service,
            threads=threads,
            cancelled=self.cancelled,
            interceptor=interceptor,
        )

    async def __aenter__(self) -> "ScanSession":
        self.bridge.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.bridge.stop()

    def cancel(self) -> None:
        """Signal cancellation to running invocations and workflows."""
        if not self.cancelled.is_set():
            logger.warning("Scan cancelled, finishing in-flight work")
        self.cancelled.set()

    def add_target(self, target: str) -> None:
        """Record a scanned image or repository in the report."""
        self.reporter.add_target(target)

    async def scan(self, image: ImageHandle) -> ScanSummary:
        """Run the plugin set against one image."""
        self.add_target(image.ref)
        return await self.executor.scan_image(image)

    def finalize(self, stream: TextIO, output: Path | str | None = None) -> bool:
        """Write the report to a stream, then to the output file.

        A failed stream write is logged and does not prevent the file write.

        Returns:
            True if the output file was written (or none was requested)

        Raises:
            ReportError: If called before the session has been closed
        """
        try:
            self.reporter.write(stream)
        except OSError as e:
            logger.error(f"Failed to write report to output stream: {e}")

        if output is None:
            return True
        return self.reporter.write_file(output)

    def exit_code(self, requested: int) -> int:
        """Process exit code for a requested --exit-code value."""
        return self.reporter.exit_code(requested)
