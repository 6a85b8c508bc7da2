"""Docker runtime backed by the docker SDK."""

import asyncio
import logging

import docker
from docker.errors import DockerException, ImageNotFound

from scanrunner.exceptions import RuntimeBackendError
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.runtime.base import ImageRuntime

logger = logging.getLogger(__name__)


class DockerRuntime(ImageRuntime):
    """Image introspection against the local docker daemon.

    docker SDK calls are blocking; they run in a worker thread.
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._client = client

    @property
    def kind(self) -> str:
        return "docker"

    @property
    def client(self) -> docker.DockerClient:
        """Get or create the docker client.

        Raises:
            RuntimeBackendError: If the docker daemon is unreachable
        """
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise RuntimeBackendError(f"Cannot connect to docker: {e}") from e
        return self._client

    async def open_image(self, image_id: str) -> ImageHandle:
        try:
            image = await asyncio.to_thread(self.client.images.get, image_id)
        except ImageNotFound as e:
            raise RuntimeBackendError(f"Image not found: {image_id}") from e
        except DockerException as e:
            raise RuntimeBackendError(f"Failed to open image {image_id}: {e}") from e

        return ImageHandle(id=image.id, repo_refs=list(image.tags), runtime=self.kind)

    async def find_image_ids(self, ref: str) -> list[str]:
        try:
            images = await asyncio.to_thread(self.client.images.list, name=ref)
        except DockerException as e:
            raise RuntimeBackendError(f"Failed to list images for {ref}: {e}") from e

        ids = [image.id for image in images]
        logger.debug(f"Found {len(ids)} local images for {ref}")
        return ids

    async def list_image_ids(self) -> list[str]:
        try:
            images = await asyncio.to_thread(self.client.images.list)
        except DockerException as e:
            raise RuntimeBackendError(f"Failed to list images: {e}") from e
        return [image.id for image in images]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
