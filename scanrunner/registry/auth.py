"""Registry credentials loaded from a TOML auth file.

File format:

    [[auths]]
    registry = "index.docker.io"
    username = "admin"
    password = "secret"
"""

import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from scanrunner.consts import DOCKER_DEFAULT_DOMAIN, DOCKER_LEGACY_DOMAINS
from scanrunner.exceptions import ConfigError
from scanrunner.models.model_auth import AuthConfig, RegistryAuth

logger = logging.getLogger(__name__)


def load_auth_config(path: Path | str) -> AuthConfig:
    """Load registry credentials.

    Raises:
        ConfigError: If the file cannot be read or is malformed
    """
    auth_path = Path(path)
    try:
        data = tomllib.loads(auth_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read auth config {auth_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid auth config {auth_path}: {e}") from e

    try:
        config = AuthConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid auth config {auth_path}: {e}") from e

    logger.debug(f"Loaded credentials for {len(config.auths)} registries from {auth_path}")
    return config


def credentials_for(config: AuthConfig | None, server: str) -> RegistryAuth | None:
    """Find credentials for a server, treating Docker Hub aliases as one registry."""
    if config is None:
        return None

    auth = config.for_server(server)
    if auth is not None:
        return auth

    hub_aliases = [DOCKER_DEFAULT_DOMAIN, *DOCKER_LEGACY_DOMAINS]
    if server in hub_aliases:
        for alias in hub_aliases:
            auth = config.for_server(alias)
            if auth is not None:
                return auth
    return None
