"""Runs the plugin set against one image under a parallelism bound."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from scanrunner.consts import DEFAULT_THREADS, PLUGIN_IMAGE_COMMAND_TYPE
from scanrunner.exceptions import ConfigError, ScanError
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor
from scanrunner.models.model_scanner import ImageHandle, ScanSummary
from scanrunner.plugins.plugin_host import PluginHost
from scanrunner.plugins.plugin_set import PluginSet
from scanrunner.plugins.services import ServiceBundle, build_services
from scanrunner.reporting.report_service import ReportService

logger = logging.getLogger(__name__)

ExecNext = Callable[[ServiceBundle], Awaitable[None]]
# (plugin, command, services, next) → awaitable; must call next to run the plugin
ExecInterceptor = Callable[[PluginDescriptor, PluginCommand, ServiceBundle, ExecNext], Awaitable[None]]


class ScanExecutor:
    """Fans a plugin set out over one image.

    Every applicable (plugin, command) pair is invoked once, at most
    `threads` at a time. Each invocation gets its own ServiceBundle; a
    failing invocation is logged and does not affect the others.
    """

    def __init__(
        self,
        plugins: PluginSet,
        host: PluginHost,
        report_service: ReportService,
        threads: int = DEFAULT_THREADS,
        cancelled: asyncio.Event | None = None,
        interceptor: ExecInterceptor | None = None,
    ):
        """Initialize ScanExecutor.

        Args:
            plugins: Plugins of the session
            host: Plugin host used to run each command
            report_service: Service the injected event sinks publish to
            threads: Maximum concurrent plugin invocations (default: 5)
            cancelled: Session cancellation signal
            interceptor: Optional hook wrapping each invocation; receives the
                default service bundle and the continuation to call

        Raises:
            ConfigError: If threads is lower than 1
        """
        if threads < 1:
            raise ConfigError(f"threads must be at least 1, got {threads}")

        self.plugins = plugins
        self.host = host
        self.report_service = report_service
        self.threads = threads
        self.cancelled = cancelled or asyncio.Event()
        self.interceptor = interceptor

    async def _invoke(
        self,
        plugin: PluginDescriptor,
        command: PluginCommand,
        image: ImageHandle,
    ) -> None:
        """Build the service bundle and run one plugin command through the interceptor."""
        services = build_services(
            self.report_service, plugin, command, image, cancelled=self.cancelled
        )

        async def run(bound: ServiceBundle) -> None:
            await self.host.exec(plugin, command, image, bound, self.cancelled)

        if self.interceptor is None:
            await run(services)
        else:
            await self.interceptor(plugin, command, services, run)

    async def scan_image(self, image: ImageHandle) -> ScanSummary:
        """Run every applicable plugin command against an image.

        Args:
            image: Image to scan

        Returns:
            ScanSummary with invocation, failure and skip counts

        Raises:
            ScanError: If the session no longer accepts events
        """
        if self.report_service.closed:
            raise ScanError(f"Cannot scan {image.ref}: report service is closed")

        invocations = self.plugins.invocations(PLUGIN_IMAGE_COMMAND_TYPE)
        summary = ScanSummary(image_id=image.id)
        semaphore = asyncio.Semaphore(self.threads)

        logger.info(f"Scan image: {image.ref} ({len(invocations)} plugin commands)")

        async def run_one(plugin: PluginDescriptor, command: PluginCommand) -> None:
            key = f"{plugin.name}:{command.joined_path}"
            async with semaphore:
                if self.cancelled.is_set():
                    logger.info(f"Skipping {key} on {image.ref} (scan cancelled)")
                    summary.skipped += 1
                    return

                summary.invoked += 1
                try:
                    await self._invoke(plugin, command, image)
                    logger.debug(f"✓ {key} on {image.ref}")
                except Exception as e:
                    summary.failed += 1
                    summary.failures[key] = str(e)
                    logger.error(f"✗ {key} on {image.ref}: {e}")

        await asyncio.gather(*[run_one(p, c) for p, c in invocations])

        logger.info(
            f"Scan finished: {image.ref} ({summary.invoked} invoked, "
            f"{summary.failed} failed, {summary.skipped} skipped)"
        )
        return summary
