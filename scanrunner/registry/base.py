"""Base registry client defining the acquisition contract."""

from abc import ABC, abstractmethod

from scanrunner.models.model_auth import AuthConfig, RegistryAuth
from scanrunner.registry.auth import credentials_for
from scanrunner.registry.catalog import RegistryCatalog
from scanrunner.runtime.base import ImageRuntime
from scanrunner.scanner.reference import parse_reference


class RegistryClient(ABC):
    """Pulls remote repositories into a local runtime and removes them again.

    Each backend decides how a pulled reference is looked up locally
    (normalize_reference) and which artifacts must be removed afterwards
    (cleanup_targets).
    """

    def __init__(
        self,
        runtime: ImageRuntime,
        auth: AuthConfig | None = None,
        catalog: RegistryCatalog | None = None,
    ):
        self.runtime = runtime
        self.auth = auth
        self.catalog = catalog or RegistryCatalog(auth=auth)

    @property
    def kind(self) -> str:
        return self.runtime.kind

    def credentials(self, ref: str) -> RegistryAuth | None:
        """Credentials matching the registry domain of a reference."""
        return credentials_for(self.auth, parse_reference(ref).domain)

    @abstractmethod
    async def pull(self, repository: str) -> str:
        """Pull a repository into the local runtime.

        Returns:
            The reference the pulled image is stored under

        Raises:
            RegistryError: If the pull fails
        """
        ...

    @abstractmethod
    async def remove(self, ref: str) -> None:
        """Remove a pulled image or reference from the local runtime.

        Raises:
            RegistryError: If the removal fails
        """
        ...

    @abstractmethod
    def normalize_reference(self, pulled: str) -> str:
        """Reference used to look up pulled images in the local runtime."""
        ...

    @abstractmethod
    def cleanup_targets(self, pulled: str, image_ids: list[str]) -> list[str]:
        """Artifacts to remove after a repository has been scanned."""
        ...

    async def list_catalog(self, server: str) -> list[str]:
        """List every repository of a registry server.

        Raises:
            RegistryError: If the catalog cannot be fetched
        """
        return await self.catalog.list_repositories(server)

    def parse_reference(self, ref: str) -> str:
        """Canonical form of a repository argument.

        Raises:
            InvalidReferenceError: If the reference is malformed
        """
        return str(parse_reference(ref))

    async def close(self) -> None:
        await self.catalog.close()
