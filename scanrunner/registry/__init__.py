"""Registry clients: catalog enumeration, pull and removal per runtime backend."""

import logging
from pathlib import Path

from scanrunner.consts import SUPPORTED_RUNTIMES
from scanrunner.exceptions import ConfigError
from scanrunner.registry.auth import credentials_for, load_auth_config
from scanrunner.registry.base import RegistryClient
from scanrunner.registry.catalog import RegistryCatalog
from scanrunner.registry.containerd_registry import ContainerdRegistryClient
from scanrunner.registry.docker_registry import DockerRegistryClient
from scanrunner.registry.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def create_registry_client(kind: str, auth_path: Path | str | None = None) -> RegistryClient:
    """Create the registry client for a runtime backend.

    Args:
        kind: Runtime backend ('docker' or 'containerd')
        auth_path: Optional TOML auth file

    Raises:
        ConfigError: If the runtime is unsupported or the auth file is invalid
    """
    if kind not in SUPPORTED_RUNTIMES:
        raise ConfigError(f"Runtime {kind!r} not supported (expected one of: {', '.join(SUPPORTED_RUNTIMES)})")

    auth = load_auth_config(auth_path) if auth_path else None
    if kind == "containerd":
        client: RegistryClient = ContainerdRegistryClient(auth=auth)
    else:
        client = DockerRegistryClient(auth=auth)

    logger.debug(f"Using {kind} registry client")
    return client


__all__ = [
    "ContainerdRegistryClient",
    "DockerRegistryClient",
    "RateLimiter",
    "RegistryCatalog",
    "RegistryClient",
    "create_registry_client",
    "credentials_for",
    "load_auth_config",
]
