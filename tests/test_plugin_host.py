"""Tests for PluginHost discovery and invocation."""

import asyncio
import json
import stat
import sys
from pathlib import Path

import pytest

from scanrunner.exceptions import PluginDiscoveryError, PluginExecError
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.plugins.plugin_host import PluginHost, resolve_plugin_dir
from scanrunner.plugins.services import build_services
from scanrunner.reporting.report_service import ReportService

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="plugins are shell scripts")

MANIFEST = {
    "name": "veinmind-weakpass",
    "version": "1.2.0",
    "description": "Weak password scanner",
    "commands": [{"path": ["scan", "image"], "type": "image"}],
}


def write_plugin(directory: Path, name: str, body: str) -> Path:
    """Write an executable shell script plugin."""
    path = directory / name
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def info_plugin(directory: Path, name: str, manifest: dict, scan_body: str = "exit 0") -> Path:
    """Write a plugin answering `info` with a manifest."""
    body = (
        'if [ "$1" = "info" ]; then\n'
        f"  echo '{json.dumps(manifest)}'\n"
        "  exit 0\n"
        "fi\n"
        f"{scan_body}"
    )
    return write_plugin(directory, name, body)


class TestResolvePluginDir:
    """Tests for resolve_plugin_dir()."""

    def test_precedence(self, monkeypatch, tmp_path: Path) -> None:
        """Test explicit param > env var > default."""
        monkeypatch.setenv("SCANRUNNER_PLUGIN_DIR", "/from/env")

        assert resolve_plugin_dir(tmp_path) == tmp_path
        assert resolve_plugin_dir() == Path("/from/env")

        monkeypatch.delenv("SCANRUNNER_PLUGIN_DIR")
        assert resolve_plugin_dir() == Path(".")


class TestDiscover:
    """Tests for PluginHost.discover()."""

    @pytest.mark.asyncio
    async def test_discover_valid_plugins(self, tmp_path: Path) -> None:
        """Test valid plugins are discovered recursively."""
        nested = tmp_path / "nested"
        nested.mkdir()
        info_plugin(tmp_path, "veinmind-weakpass", MANIFEST)
        info_plugin(nested, "veinmind-backdoor", {**MANIFEST, "name": "veinmind-backdoor"})

        plugins = await PluginHost().discover(tmp_path)

        assert sorted(plugins.names) == ["veinmind-backdoor", "veinmind-weakpass"]
        weakpass = plugins.get("veinmind-weakpass")
        assert weakpass.version == "1.2.0"
        assert weakpass.commands[0].joined_path == "scan/image"

    @pytest.mark.asyncio
    async def test_skips_invalid_candidates(self, tmp_path: Path) -> None:
        """Test failing, malformed and non-executable candidates are skipped."""
        info_plugin(tmp_path, "veinmind-good", MANIFEST)
        write_plugin(tmp_path, "veinmind-crash", "exit 3")
        write_plugin(tmp_path, "veinmind-garbage", "echo 'not json'")
        (tmp_path / "veinmind-plain").write_text("data")

        plugins = await PluginHost().discover(tmp_path)

        assert plugins.names == ["veinmind-weakpass"]

    @pytest.mark.asyncio
    async def test_glob_filter(self, tmp_path: Path) -> None:
        """Test only files matching the glob are considered."""
        info_plugin(tmp_path, "veinmind-weakpass", MANIFEST)
        info_plugin(tmp_path, "other-tool", {**MANIFEST, "name": "other-tool"})

        plugins = await PluginHost().discover(tmp_path, glob="other-*")

        assert plugins.names == ["other-tool"]

    @pytest.mark.asyncio
    async def test_info_timeout(self, tmp_path: Path) -> None:
        """Test a candidate hanging on `info` is skipped."""
        write_plugin(tmp_path, "veinmind-slow", "exec sleep 5")

        plugins = await PluginHost(info_timeout=0.2).discover(tmp_path)

        assert len(plugins) == 0

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path: Path) -> None:
        """Test a missing plugin directory is fatal."""
        with pytest.raises(PluginDiscoveryError):
            await PluginHost().discover(tmp_path / "missing")


class TestExec:
    """Tests for PluginHost.exec()."""

    @pytest.fixture
    def target(self) -> ImageHandle:
        return ImageHandle(id="sha256:abc", repo_refs=["nginx:latest"], runtime="docker")

    async def _run(self, tmp_path: Path, target: ImageHandle, scan_body: str, **host_kwargs):
        path = info_plugin(tmp_path, "veinmind-weakpass", MANIFEST, scan_body)
        host = PluginHost(**host_kwargs)
        plugin = (await host.discover(tmp_path)).get("veinmind-weakpass")
        assert plugin is not None and Path(plugin.path) == path.resolve()

        service = ReportService()
        cancelled = asyncio.Event()
        services = build_services(service, plugin, plugin.commands[0], target, cancelled=cancelled)
        return host, plugin, service, services, cancelled

    def _drain(self, service: ReportService) -> list:
        events = []
        while not service.events.empty():
            events.append(service.events.get_nowait())
        return events

    @pytest.mark.asyncio
    async def test_stdout_events(self, tmp_path: Path, target: ImageHandle) -> None:
        """Test JSON lines become events in order; other output is logged."""
        body = (
            'echo "starting $1 $2 $3 on $SCANRUNNER_RUNTIME"\n'
            """echo '{"level": "high", "alert_type": "Weakpass", "detail": {"user": "root"}}'\n"""
            """echo '{"level": "low", "alert_type": "Weakpass"}'\n"""
            "echo 'diagnostic' >&2"
        )
        host, plugin, service, services, cancelled = await self._run(tmp_path, target, body)

        await host.exec(plugin, plugin.commands[0], target, services, cancelled)

        events = self._drain(service)
        assert [e.level.value for e in events] == ["high", "low"]
        assert events[0].detail == {"user": "root"}
        assert events[0].image_id == "sha256:abc"

    @pytest.mark.asyncio
    async def test_arguments_and_runtime(self, tmp_path: Path, target: ImageHandle) -> None:
        """Test the command path and image id are passed, with the runtime in the env."""
        body = """echo "{\\"alert_type\\": \\"$1/$2/$3/$SCANRUNNER_RUNTIME\\"}\""""
        host, plugin, service, services, cancelled = await self._run(tmp_path, target, body)

        await host.exec(plugin, plugin.commands[0], target, services, cancelled)

        events = self._drain(service)
        assert events[0].alert_type == "scan/image/sha256:abc/docker"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path: Path, target: ImageHandle) -> None:
        """Test non-zero exit raises PluginExecError, keeping events already emitted."""
        body = """echo '{"level": "medium"}'\nexit 2"""
        host, plugin, service, services, cancelled = await self._run(tmp_path, target, body)

        with pytest.raises(PluginExecError, match="code 2"):
            await host.exec(plugin, plugin.commands[0], target, services, cancelled)

        assert len(self._drain(service)) == 1

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path: Path, target: ImageHandle) -> None:
        """Test exceeding the timeout kills the plugin."""
        host, plugin, service, services, cancelled = await self._run(
            tmp_path, target, "exec sleep 5", exec_timeout=0.3
        )

        with pytest.raises(PluginExecError, match="timed out"):
            await host.exec(plugin, plugin.commands[0], target, services, cancelled)

    @pytest.mark.asyncio
    async def test_cancellation(self, tmp_path: Path, target: ImageHandle) -> None:
        """Test cancellation kills the plugin and drops further events."""
        body = """echo '{"level": "low"}'\nexec sleep 5"""
        host, plugin, service, services, cancelled = await self._run(tmp_path, target, body)

        async def cancel_soon() -> None:
            await asyncio.sleep(0.5)
            cancelled.set()

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(PluginExecError, match="cancelled"):
            await host.exec(plugin, plugin.commands[0], target, services, cancelled)
        await canceller

        assert [e.level.value for e in self._drain(service)] == ["low"]

    @pytest.mark.asyncio
    async def test_oversized_line_skipped(self, tmp_path: Path, target: ImageHandle, monkeypatch, caplog) -> None:
        """Test a line over the stream limit is dropped and later events still arrive."""
        monkeypatch.setattr("scanrunner.plugins.plugin_host.STREAM_LIMIT", 1024)
        body = (
            """echo '{"level": "low"}'\n"""
            "head -c 5000 /dev/zero | tr '\\000' 'a'\n"
            "echo\n"
            """echo '{"level": "high"}'"""
        )
        host, plugin, service, services, cancelled = await self._run(tmp_path, target, body)

        await host.exec(plugin, plugin.commands[0], target, services, cancelled)

        assert [e.level.value for e in self._drain(service)] == ["low", "high"]
        assert "Dropping output line longer than 1024 bytes" in caplog.text
