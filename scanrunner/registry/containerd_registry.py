"""Containerd backend: pull and remove through `ctr`."""

import logging

from scanrunner.consts import DOCKER_DEFAULT_TAG
from scanrunner.exceptions import RegistryError, RuntimeBackendError
from scanrunner.models.model_auth import AuthConfig
from scanrunner.registry.base import RegistryClient
from scanrunner.registry.catalog import RegistryCatalog
from scanrunner.runtime.containerd_runtime import ContainerdRuntime
from scanrunner.scanner.reference import parse_reference

logger = logging.getLogger(__name__)


class ContainerdRegistryClient(RegistryClient):
    """Registry client storing pulled images in containerd.

    containerd keeps the full reference, so lookups and cleanup both use
    the pulled reference as is.
    """

    runtime: ContainerdRuntime

    def __init__(
        self,
        runtime: ContainerdRuntime | None = None,
        auth: AuthConfig | None = None,
        catalog: RegistryCatalog | None = None,
    ):
        super().__init__(runtime or ContainerdRuntime(), auth=auth, catalog=catalog)

    async def pull(self, repository: str) -> str:
        parsed = parse_reference(repository)
        if not parsed.tag and not parsed.digest:
            ref = f"{parsed.name}:{DOCKER_DEFAULT_TAG}"
        else:
            ref = str(parsed)

        args = ["images", "pull"]
        creds = self.credentials(repository)
        if creds and creds.username:
            args += ["--user", f"{creds.username}:{creds.password}"]
        args.append(ref)

        logger.info(f"Pulling {ref}")
        try:
            await self.runtime.run_ctr(*args)
        except RuntimeBackendError as e:
            raise RegistryError(f"Failed to pull {repository}: {e}") from e
        return ref

    async def remove(self, ref: str) -> None:
        try:
            await self.runtime.run_ctr("images", "rm", ref)
        except RuntimeBackendError as e:
            raise RegistryError(f"Failed to remove {ref}: {e}") from e
        logger.debug(f"Removed {ref}")

    def normalize_reference(self, pulled: str) -> str:
        return pulled

    def cleanup_targets(self, pulled: str, image_ids: list[str]) -> list[str]:
        return [pulled]
