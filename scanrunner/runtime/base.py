"""Base image runtime defining the introspection contract."""

from abc import ABC, abstractmethod

from scanrunner.models.model_scanner import ImageHandle


class ImageRuntime(ABC):
    """Abstract base class for local image runtimes (docker, containerd)."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """Runtime identifier passed to plugins (e.g., 'docker')."""
        ...

    @abstractmethod
    async def open_image(self, image_id: str) -> ImageHandle:
        """Open a local image by id.

        Raises:
            RuntimeBackendError: If the image does not exist or the runtime fails
        """
        ...

    @abstractmethod
    async def find_image_ids(self, ref: str) -> list[str]:
        """Return ids of local images matching a repository reference."""
        ...

    @abstractmethod
    async def list_image_ids(self) -> list[str]:
        """Return ids of every local image."""
        ...
