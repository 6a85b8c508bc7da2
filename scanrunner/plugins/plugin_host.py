"""Plugin discovery and subprocess invocation.

A plugin is an executable file. Discovery runs `<plugin> info`, which must
print a JSON manifest on stdout:

    {"name": "veinmind-weakpass", "version": "1.0.0",
     "commands": [{"path": ["scan", "image"], "type": "image"}]}

An invocation runs `<plugin> <command path...> <image id>`. Every stdout
line holding a JSON object is an event payload; anything else, and all of
stderr, is logged through the invocation's scoped logger.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scanrunner.consts import (
    PLUGIN_DEFAULT_DIR,
    PLUGIN_DEFAULT_GLOB,
    PLUGIN_DIR_ENV,
    PLUGIN_EXEC_TIMEOUT,
    PLUGIN_INFO_CONCURRENCY,
    PLUGIN_INFO_TIMEOUT,
    PLUGIN_RUNTIME_ENV,
)
from scanrunner.exceptions import PluginDiscoveryError, PluginExecError
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.plugins.plugin_set import PluginSet
from scanrunner.plugins.services import ServiceBundle

logger = logging.getLogger(__name__)

# Plugins may print long single-line JSON payloads
STREAM_LIMIT = 4 * 1024 * 1024


def resolve_plugin_dir(plugin_dir: str | Path | None = None) -> Path:
    """Resolve the plugin root: explicit param > env var > default."""
    if plugin_dir:
        return Path(plugin_dir)
    env_dir = os.getenv(PLUGIN_DIR_ENV, "").strip()
    if env_dir:
        return Path(env_dir)
    return Path(PLUGIN_DEFAULT_DIR)


class PluginHost:
    """Discovers plugin executables and runs their commands."""

    def __init__(
        self,
        info_timeout: float = PLUGIN_INFO_TIMEOUT,
        exec_timeout: float = PLUGIN_EXEC_TIMEOUT,
        info_concurrency: int = PLUGIN_INFO_CONCURRENCY,
    ):
        """Initialize PluginHost.

        Args:
            info_timeout: Seconds allowed for `<plugin> info`
            exec_timeout: Seconds allowed for one plugin invocation
            info_concurrency: Parallel `info` calls during discovery
        """
        self.info_timeout = info_timeout
        self.exec_timeout = exec_timeout
        self.info_concurrency = info_concurrency

    def _find_executables(self, root: Path, glob: str) -> list[Path]:
        """Find executable files under root whose name matches glob."""
        found = []
        for path in sorted(root.rglob(glob)):
            if path.is_file() and os.access(path, os.X_OK):
                found.append(path)
            else:
                logger.debug(f"Ignoring non-executable match: {path}")
        return found

    def _parse_manifest(self, path: Path, output: str) -> PluginDescriptor:
        """Parse the JSON manifest printed by `<plugin> info`.

        Raises:
            ValueError: If the manifest is not a JSON object
            ValidationError: If a field has an invalid value
        """
        data = json.loads(output)
        if not isinstance(data, dict):
            raise ValueError("manifest is not a JSON object")

        commands = [
            PluginCommand(path=tuple(c.get("path", [])), type=c.get("type", "image"))
            for c in data.get("commands", [])
        ]
        return PluginDescriptor(
            name=data.get("name") or path.name,
            path=str(path.resolve()),
            version=data.get("version", ""),
            description=data.get("description", ""),
            author=data.get("author", ""),
            tags=tuple(data.get("tags", [])),
            commands=tuple(commands),
        )

    async def _read_manifest(self, path: Path) -> PluginDescriptor | None:
        """Run `<plugin> info` and parse its manifest.

        Returns:
            PluginDescriptor, or None if the executable is not a valid plugin
        """
        try:
            process = await asyncio.create_subprocess_exec(
                str(path),
                "info",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Cannot execute plugin candidate {path}: {e}")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.info_timeout,
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Plugin candidate {path} timed out answering 'info' ({self.info_timeout}s)")
            return None

        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace").strip()
            logger.warning(f"Plugin candidate {path} failed 'info' (code {process.returncode}): {error_msg[:500]}")
            return None

        try:
            return self._parse_manifest(path, stdout.decode("utf-8", errors="replace"))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Plugin candidate {path} returned an invalid manifest: {e}")
            return None

    async def discover(
        self,
        root: str | Path | None = None,
        glob: str | None = None,
    ) -> PluginSet:
        """Discover plugins under a directory.

        Args:
            root: Directory walked recursively (default: resolve_plugin_dir())
            glob: File name pattern of plugin executables

        Returns:
            PluginSet of valid plugins, in path order

        Raises:
            PluginDiscoveryError: If the root directory does not exist
        """
        root_path = resolve_plugin_dir(root)
        pattern = glob or PLUGIN_DEFAULT_GLOB

        if not root_path.is_dir():
            raise PluginDiscoveryError(f"Plugin directory not found: {root_path}")

        candidates = self._find_executables(root_path, pattern)
        logger.debug(f"Found {len(candidates)} plugin candidates in {root_path} ({pattern})")

        semaphore = asyncio.Semaphore(self.info_concurrency)

        async def read_one(path: Path) -> PluginDescriptor | None:
            async with semaphore:
                return await self._read_manifest(path)

        manifests = await asyncio.gather(*[read_one(p) for p in candidates])
        plugins = PluginSet(m for m in manifests if m is not None)

        for plugin in plugins:
            logger.info(f"Discovered plugin: {plugin.name!r}")
        return plugins

    def _parse_event_line(self, line: str) -> dict[str, Any] | None:
        """Return the JSON object on a stdout line, or None for plain output."""
        if not line.startswith("{"):
            return None
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    async def _read_lines(self, stream: asyncio.StreamReader, services: ServiceBundle):
        """Yield output lines; a line longer than STREAM_LIMIT is dropped with a warning."""
        skipping = False
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                if e.partial and not skipping:
                    yield e.partial
                return
            except asyncio.LimitOverrunError as e:
                # Consume the buffered part; the rest of the line is dropped on the next read
                await stream.readexactly(e.consumed)
                if not skipping:
                    services.logger.warning(f"Dropping output line longer than {STREAM_LIMIT} bytes")
                skipping = True
                continue

            if skipping:
                skipping = False
                continue
            yield raw

    async def _pump_stdout(self, stream: asyncio.StreamReader, services: ServiceBundle) -> None:
        async for raw in self._read_lines(stream, services):
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            payload = self._parse_event_line(line)
            if payload is None:
                services.logger.info(line)
            else:
                services.sink.emit(payload)

    async def _pump_stderr(self, stream: asyncio.StreamReader, services: ServiceBundle) -> None:
        async for raw in self._read_lines(stream, services):
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                services.logger.info(line)

    async def _communicate(
        self, process: asyncio.subprocess.Process, services: ServiceBundle
    ) -> int:
        results = await asyncio.gather(
            self._pump_stdout(process.stdout, services),
            self._pump_stderr(process.stderr, services),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                raise PluginExecError(f"Failed to read plugin output: {result}") from result
        return await process.wait()

    async def exec(
        self,
        plugin: PluginDescriptor,
        command: PluginCommand,
        image: ImageHandle,
        services: ServiceBundle,
        cancelled: asyncio.Event | None = None,
    ) -> None:
        """Run one plugin command against an image.

        Args:
            plugin: Plugin to run
            command: Declared command of the plugin
            image: Image to scan
            services: Logger and event sink bound to this invocation
            cancelled: Session cancellation signal; when set, the plugin is
                killed and its remaining output is discarded

        Raises:
            PluginExecError: On spawn failure, timeout, cancellation or
                non-zero exit
        """
        cmd = [plugin.path, *command.path, image.id]
        env = os.environ.copy()
        env[PLUGIN_RUNTIME_ENV] = image.runtime

        services.logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise PluginExecError(f"Cannot start plugin {plugin.name}: {e}") from e

        work = asyncio.create_task(self._communicate(process, services))
        waiters: set[asyncio.Future] = {work}
        cancel_wait: asyncio.Task | None = None
        if cancelled is not None:
            cancel_wait = asyncio.create_task(cancelled.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.exec_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if work in done:
                returncode = work.result()
                if returncode != 0:
                    raise PluginExecError(f"Plugin {plugin.name} exited with code {returncode}")
                return

            if cancel_wait is not None and cancel_wait in done:
                raise PluginExecError(f"Plugin {plugin.name} cancelled")
            raise PluginExecError(f"Plugin {plugin.name} timed out ({self.exec_timeout}s)")

        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
