"""Docker backend: pull and remove through the docker SDK."""

import asyncio
import logging

from docker.errors import DockerException

from scanrunner.consts import DOCKER_DEFAULT_TAG
from scanrunner.exceptions import RegistryError, RuntimeBackendError
from scanrunner.models.model_auth import AuthConfig
from scanrunner.registry.base import RegistryClient
from scanrunner.registry.catalog import RegistryCatalog
from scanrunner.runtime.docker_runtime import DockerRuntime
from scanrunner.scanner.reference import normalize_for_docker, parse_reference

logger = logging.getLogger(__name__)


class DockerRegistryClient(RegistryClient):
    """Registry client storing pulled images in the local docker daemon."""

    runtime: DockerRuntime

    def __init__(
        self,
        runtime: DockerRuntime | None = None,
        auth: AuthConfig | None = None,
        catalog: RegistryCatalog | None = None,
    ):
        super().__init__(runtime or DockerRuntime(), auth=auth, catalog=catalog)

    async def pull(self, repository: str) -> str:
        parsed = parse_reference(repository)
        version = parsed.digest or parsed.tag or DOCKER_DEFAULT_TAG

        creds = self.credentials(repository)
        auth_config = {"username": creds.username, "password": creds.password} if creds else None

        logger.info(f"Pulling {parsed.name} ({version})")
        try:
            client = self.runtime.client
            await asyncio.to_thread(
                client.images.pull,
                parsed.name,
                tag=version,
                auth_config=auth_config,
            )
        except (DockerException, RuntimeBackendError) as e:
            raise RegistryError(f"Failed to pull {repository}: {e}") from e

        sep = "@" if parsed.digest else ":"
        return f"{parsed.name}{sep}{version}"

    async def remove(self, ref: str) -> None:
        try:
            client = self.runtime.client
            await asyncio.to_thread(client.images.remove, image=ref, force=True)
        except (DockerException, RuntimeBackendError) as e:
            raise RegistryError(f"Failed to remove {ref}: {e}") from e
        logger.debug(f"Removed {ref}")

    def normalize_reference(self, pulled: str) -> str:
        return normalize_for_docker(pulled)

    def cleanup_targets(self, pulled: str, image_ids: list[str]) -> list[str]:
        return list(image_ids) if image_ids else [pulled]

    async def close(self) -> None:
        await super().close()
        self.runtime.close()
