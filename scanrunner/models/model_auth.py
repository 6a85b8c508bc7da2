from pydantic import BaseModel, Field


class RegistryAuth(BaseModel):
    """Credentials for one registry server."""

    registry: str = Field(description="Registry server address, e.g. 'index.docker.io'")
    username: str = Field(default="")
    password: str = Field(default="")


class AuthConfig(BaseModel):
    """Contents of the `--config` auth file."""

    auths: list[RegistryAuth] = Field(default_factory=list)

    def for_server(self, server: str) -> RegistryAuth | None:
        """Return credentials registered for a server, if any."""
        for auth in self.auths:
            if auth.registry == server:
                return auth
        return None
