"""Tests for registry clients, the client factory and auth loading."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from docker.errors import APIError

from scanrunner.exceptions import ConfigError, RegistryError, RuntimeBackendError
from scanrunner.models.model_auth import AuthConfig, RegistryAuth
from scanrunner.registry import (
    ContainerdRegistryClient,
    DockerRegistryClient,
    create_registry_client,
    credentials_for,
    load_auth_config,
)
from scanrunner.runtime.containerd_runtime import ContainerdRuntime
from scanrunner.runtime.docker_runtime import DockerRuntime

AUTH_TOML = """
[[auths]]
registry = "index.docker.io"
username = "hubuser"
password = "hubpass"

[[auths]]
registry = "registry.local:5000"
username = "admin"
password = "secret"
"""


@pytest.fixture
def auth_file(tmp_path: Path) -> Path:
    path = tmp_path / "auth.toml"
    path.write_text(AUTH_TOML)
    return path


class TestAuth:
    """Tests for auth file loading and lookup."""

    def test_load(self, auth_file: Path) -> None:
        """Test TOML auth tables are parsed."""
        config = load_auth_config(auth_file)

        assert [a.registry for a in config.auths] == ["index.docker.io", "registry.local:5000"]
        assert config.auths[1].password == "secret"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test an unreadable file is a ConfigError."""
        with pytest.raises(ConfigError):
            load_auth_config(tmp_path / "missing.toml")

    def test_malformed_file(self, tmp_path: Path) -> None:
        """Test invalid TOML is a ConfigError."""
        path = tmp_path / "auth.toml"
        path.write_text("[[auths]\nregistry = ")

        with pytest.raises(ConfigError):
            load_auth_config(path)

    def test_docker_hub_aliases(self) -> None:
        """Test Docker Hub credentials are found under any of its names."""
        config = AuthConfig(auths=[RegistryAuth(registry="index.docker.io", username="u", password="p")])

        assert credentials_for(config, "docker.io").username == "u"
        assert credentials_for(config, "registry-1.docker.io").username == "u"
        assert credentials_for(config, "quay.io") is None
        assert credentials_for(None, "docker.io") is None


class TestCreateRegistryClient:
    """Tests for create_registry_client()."""

    def test_unknown_runtime(self) -> None:
        """Test an unsupported runtime is rejected before scanning."""
        with pytest.raises(ConfigError, match="not supported"):
            create_registry_client("podman")

    def test_backends(self, auth_file: Path) -> None:
        """Test each runtime selects its client, with credentials loaded."""
        docker_client = create_registry_client("docker", auth_file)
        containerd_client = create_registry_client("containerd")

        assert isinstance(docker_client, DockerRegistryClient)
        assert docker_client.kind == "docker"
        assert len(docker_client.auth.auths) == 2
        assert isinstance(containerd_client, ContainerdRegistryClient)
        assert containerd_client.auth is None


class TestDockerRegistryClient:
    """Tests for DockerRegistryClient."""

    @pytest.fixture
    def sdk(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def client(self, sdk: MagicMock, auth_file: Path) -> DockerRegistryClient:
        return DockerRegistryClient(DockerRuntime(client=sdk), auth=load_auth_config(auth_file))

    @pytest.mark.asyncio
    async def test_pull_default_tag(self, client: DockerRegistryClient, sdk: MagicMock) -> None:
        """Test an untagged repository is pulled as latest with hub credentials."""
        pulled = await client.pull("docker.io/library/nginx")

        sdk.images.pull.assert_called_once_with(
            "docker.io/library/nginx",
            tag="latest",
            auth_config={"username": "hubuser", "password": "hubpass"},
        )
        assert pulled == "docker.io/library/nginx:latest"

    @pytest.mark.asyncio
    async def test_pull_private_registry(self, client: DockerRegistryClient, sdk: MagicMock) -> None:
        """Test tags and registry credentials are honored."""
        pulled = await client.pull("registry.local:5000/team/app:v2")

        sdk.images.pull.assert_called_once_with(
            "registry.local:5000/team/app",
            tag="v2",
            auth_config={"username": "admin", "password": "secret"},
        )
        assert pulled == "registry.local:5000/team/app:v2"

    @pytest.mark.asyncio
    async def test_pull_failure(self, client: DockerRegistryClient, sdk: MagicMock) -> None:
        """Test SDK errors surface as RegistryError."""
        sdk.images.pull.side_effect = APIError("manifest unknown")

        with pytest.raises(RegistryError):
            await client.pull("team/missing")

    @pytest.mark.asyncio
    async def test_remove(self, client: DockerRegistryClient, sdk: MagicMock) -> None:
        """Test removal is forced; failures surface as RegistryError."""
        await client.remove("sha256:abc")
        sdk.images.remove.assert_called_once_with(image="sha256:abc", force=True)

        sdk.images.remove.side_effect = APIError("conflict")
        with pytest.raises(RegistryError):
            await client.remove("sha256:abc")

    def test_lookup_and_cleanup(self, client: DockerRegistryClient) -> None:
        """Test docker normalization and cleanup targets."""
        assert client.normalize_reference("docker.io/library/nginx:latest") == "nginx:latest"
        assert client.normalize_reference("registry.local:5000/team/app:v2") == "registry.local:5000/team/app:v2"
        assert client.cleanup_targets("nginx:latest", ["sha256:1", "sha256:2"]) == ["sha256:1", "sha256:2"]
        assert client.cleanup_targets("nginx:latest", []) == ["nginx:latest"]

    def test_parse_reference(self, client: DockerRegistryClient) -> None:
        """Test arguments are turned into canonical references."""
        assert client.parse_reference("nginx") == "docker.io/library/nginx"


class TestContainerdRegistryClient:
    """Tests for ContainerdRegistryClient."""

    @pytest.fixture
    def runtime(self) -> ContainerdRuntime:
        runtime = ContainerdRuntime(namespace="k8s.io")
        runtime.run_ctr = AsyncMock(return_value="")
        return runtime

    @pytest.mark.asyncio
    async def test_pull_with_credentials(self, runtime: ContainerdRuntime, auth_file: Path) -> None:
        """Test ctr pull receives --user and the fully qualified reference."""
        client = ContainerdRegistryClient(runtime, auth=load_auth_config(auth_file))

        pulled = await client.pull("registry.local:5000/team/app")

        runtime.run_ctr.assert_awaited_once_with(
            "images", "pull", "--user", "admin:secret", "registry.local:5000/team/app:latest"
        )
        assert pulled == "registry.local:5000/team/app:latest"

    @pytest.mark.asyncio
    async def test_pull_anonymous(self, runtime: ContainerdRuntime) -> None:
        """Test no --user flag without credentials."""
        client = ContainerdRegistryClient(runtime)

        await client.pull("nginx:1.25")

        runtime.run_ctr.assert_awaited_once_with("images", "pull", "docker.io/library/nginx:1.25")

    @pytest.mark.asyncio
    async def test_failures(self, runtime: ContainerdRuntime) -> None:
        """Test ctr failures surface as RegistryError."""
        runtime.run_ctr.side_effect = RuntimeBackendError("ctr error (code 1)")
        client = ContainerdRegistryClient(runtime)

        with pytest.raises(RegistryError):
            await client.pull("nginx")
        with pytest.raises(RegistryError):
            await client.remove("docker.io/library/nginx:latest")

    def test_lookup_and_cleanup(self, runtime: ContainerdRuntime) -> None:
        """Test containerd keeps the full reference for lookup and cleanup."""
        client = ContainerdRegistryClient(runtime)
        ref = "docker.io/library/nginx:latest"

        assert client.normalize_reference(ref) == ref
        assert client.cleanup_targets(ref, ["sha256:1"]) == [ref]
