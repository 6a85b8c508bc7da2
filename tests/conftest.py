"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import Callable

import pytest

from scanrunner.exceptions import PluginExecError, RegistryError
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.plugins.plugin_host import PluginHost
from scanrunner.plugins.services import ServiceBundle
from scanrunner.registry.base import RegistryClient
from scanrunner.runtime.base import ImageRuntime
from scanrunner.scanner.reference import normalize_for_docker


class FakePluginHost(PluginHost):
    """Plugin host that runs in-process behaviors instead of subprocesses.

    behaviors maps a plugin name to a callable receiving the service
    bundle; it may emit events, raise, or do nothing.
    """

    def __init__(
        self,
        behaviors: dict[str, Callable[[ServiceBundle], None]] | None = None,
        delay: float = 0.0,
    ):
        super().__init__()
        self.behaviors = behaviors or {}
        self.delay = delay
        self.calls: list[tuple[str, str, str]] = []
        self.active = 0
        self.max_active = 0

    async def exec(self, plugin, command, image, services, cancelled=None) -> None:
        self.calls.append((plugin.name, command.joined_path, image.id))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            behavior = self.behaviors.get(plugin.name)
            if behavior is not None:
                behavior(services)
        finally:
            self.active -= 1


class FakeRuntime(ImageRuntime):
    """In-memory image store keyed by image id."""

    def __init__(self, images: dict[str, list[str]] | None = None, kind: str = "docker"):
        self.images = dict(images or {})
        self._kind = kind
        self.opened: list[str] = []
        self.closed = False

    @property
    def kind(self) -> str:
        return self._kind

    async def open_image(self, image_id: str) -> ImageHandle:
        if image_id not in self.images:
            raise RuntimeError(f"Image not found: {image_id}")
        self.opened.append(image_id)
        return ImageHandle(id=image_id, repo_refs=self.images[image_id], runtime=self.kind)

    async def find_image_ids(self, ref: str) -> list[str]:
        return [image_id for image_id, refs in self.images.items() if ref in refs]

    async def list_image_ids(self) -> list[str]:
        return list(self.images)

    def close(self) -> None:
        self.closed = True


class FakeRegistryClient(RegistryClient):
    """Registry client whose pulls add images to a FakeRuntime.

    Pulling repository 'x' stores one image 'sha256:x' referenced by the
    docker-normalized name of 'x'.
    """

    def __init__(
        self,
        catalog: list[str] | None = None,
        fail_pull: set[str] | None = None,
        fail_remove: bool = False,
    ):
        super().__init__(FakeRuntime())
        self._catalog = catalog or []
        self.fail_pull = fail_pull or set()
        self.fail_remove = fail_remove
        self.pulled: list[str] = []
        self.removed: list[str] = []

    async def pull(self, repository: str) -> str:
        if repository in self.fail_pull:
            raise RegistryError(f"Failed to pull {repository}")
        self.pulled.append(repository)
        self.runtime.images[f"sha256:{repository}"] = [normalize_for_docker(repository)]
        return repository

    async def remove(self, ref: str) -> None:
        if self.fail_remove:
            raise RegistryError(f"Failed to remove {ref}")
        self.removed.append(ref)
        self.runtime.images.pop(ref, None)

    def normalize_reference(self, pulled: str) -> str:
        return normalize_for_docker(pulled)

    def cleanup_targets(self, pulled: str, image_ids: list[str]) -> list[str]:
        return list(image_ids) if image_ids else [pulled]

    async def list_catalog(self, server: str) -> list[str]:
        return list(self._catalog)


@pytest.fixture
def make_plugin() -> Callable[..., PluginDescriptor]:
    """Factory for plugin descriptors with one image command by default."""

    def _make(name: str, commands: list[tuple[str, ...]] | None = None, command_type: str = "image"):
        paths = commands if commands is not None else [("scan", "image")]
        return PluginDescriptor(
            name=name,
            path=f"/opt/plugins/{name}",
            version="1.0.0",
            commands=tuple(PluginCommand(path=p, type=command_type) for p in paths),
        )

    return _make


@pytest.fixture
def image() -> ImageHandle:
    """A local docker image."""
    return ImageHandle(id="sha256:abc123", repo_refs=["nginx:latest"], runtime="docker")


@pytest.fixture
def failing_behavior() -> Callable[[ServiceBundle], None]:
    """Plugin behavior that fails like a non-zero exit."""

    def _fail(services: ServiceBundle) -> None:
        raise PluginExecError("Plugin exited with code 1")

    return _fail


@pytest.fixture
def make_host() -> Callable[..., FakePluginHost]:
    """Factory for in-process plugin hosts."""
    return FakePluginHost


@pytest.fixture
def make_runtime() -> Callable[..., FakeRuntime]:
    """Factory for in-memory runtimes."""
    return FakeRuntime


@pytest.fixture
def make_registry_client() -> Callable[..., FakeRegistryClient]:
    """Factory for registry clients backed by a FakeRuntime."""
    return FakeRegistryClient
