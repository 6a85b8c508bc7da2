"""Registry v2 catalog client.

Lists repositories through `GET /v2/_catalog` with:
- Link-header pagination
- Basic auth or bearer-token challenge handling
- Exponential backoff on rate limits (429) and server errors
"""

import asyncio
import logging
import re
from typing import Any

import httpx

from scanrunner.consts import (
    DOCKER_DEFAULT_DOMAIN,
    DOCKER_LEGACY_DOMAINS,
    REGISTRY_CATALOG_PAGE_SIZE,
    REGISTRY_MAX_RETRIES,
    REGISTRY_TIMEOUT,
)
from scanrunner.exceptions import RegistryError
from scanrunner.models.model_auth import AuthConfig, RegistryAuth
from scanrunner.registry.auth import credentials_for
from scanrunner.registry.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')
_RETRY_STATUS = (429, 500, 502, 503, 504)


def _base_url(server: str) -> str:
    if server.startswith(("http://", "https://")):
        return server.rstrip("/")
    return f"https://{server.rstrip('/')}"


def _server_host(server: str) -> str:
    return re.sub(r"^https?://", "", server).rstrip("/")


def _qualify(server: str, repository: str) -> str:
    """Prefix a catalog entry with its registry unless it is Docker Hub."""
    host = _server_host(server)
    if host == DOCKER_DEFAULT_DOMAIN or host in DOCKER_LEGACY_DOMAINS:
        return repository
    return f"{host}/{repository}"


class RegistryCatalog:
    """Enumerates repositories of a registry server."""

    def __init__(
        self,
        auth: AuthConfig | None = None,
        timeout: float = REGISTRY_TIMEOUT,
        page_size: int = REGISTRY_CATALOG_PAGE_SIZE,
        max_retries: int = REGISTRY_MAX_RETRIES,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize RegistryCatalog.

        Args:
            auth: Credentials from the auth file
            timeout: HTTP timeout in seconds
            page_size: Repositories requested per catalog page
            max_retries: Retries on 429/5xx before giving up
            rate_limiter: Backoff policy (default: RateLimiter())
            transport: Custom httpx transport
        """
        self.auth = auth
        self.timeout = timeout
        self.page_size = page_size
        self.max_retries = max_retries
        self._rate_limiter = rate_limiter or RateLimiter()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._tokens: dict[str, str] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _parse_challenge(self, header: str) -> tuple[str, dict[str, str]]:
        """Split a WWW-Authenticate header into (scheme, params)."""
        scheme, _, params = header.partition(" ")
        return scheme.lower(), dict(_CHALLENGE_PARAM_RE.findall(params))

    async def _fetch_token(self, params: dict[str, str], creds: RegistryAuth | None) -> str:
        """Exchange credentials for a bearer token at the challenge realm.

        Raises:
            RegistryError: If the token endpoint refuses or returns no token
        """
        realm = params.get("realm")
        if not realm:
            raise RegistryError("Bearer challenge without realm")

        query = {k: v for k, v in params.items() if k in ("service", "scope")}
        basic = (creds.username, creds.password) if creds and creds.username else None

        client = await self._get_client()
        response = await client.get(realm, params=query, auth=basic)
        if response.status_code != 200:
            raise RegistryError(f"Token request to {realm} failed ({response.status_code})")

        data = response.json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryError(f"Token response from {realm} holds no token")
        return token

    async def _request(self, url: str, params: dict[str, Any] | None, server: str) -> httpx.Response:
        """GET with auth challenge handling and retry on transient errors.

        Raises:
            RegistryError: On authorization failure, exhausted retries or
                other non-success status
        """
        host = _server_host(server)
        creds = credentials_for(self.auth, host)
        client = await self._get_client()
        authenticated = False

        while True:
            headers = {}
            basic = None
            if host in self._tokens:
                headers["Authorization"] = f"Bearer {self._tokens[host]}"
            elif authenticated and creds is not None:
                basic = (creds.username, creds.password)

            try:
                response = await client.get(url, params=params, headers=headers, auth=basic)
            except httpx.HTTPError as e:
                raise RegistryError(f"Catalog request to {url} failed: {e}") from e

            if response.status_code == 401 and not authenticated:
                authenticated = True
                scheme, challenge = self._parse_challenge(response.headers.get("WWW-Authenticate", ""))
                if scheme == "bearer":
                    self._tokens[host] = await self._fetch_token(challenge, creds)
                    logger.debug(f"Obtained bearer token for {host}")
                elif creds is None:
                    raise RegistryError(f"Registry {host} requires credentials")
                continue

            if response.status_code in _RETRY_STATUS:
                if self._rate_limiter.consecutive_errors >= self.max_retries:
                    self._rate_limiter.reset()
                    raise RegistryError(
                        f"Catalog request to {url} failed after {self.max_retries} retries "
                        f"({response.status_code})"
                    )
                delay = self._rate_limiter.backoff(response.headers.get("Retry-After"))
                logger.warning(f"Registry returned {response.status_code}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            if response.status_code != 200:
                raise RegistryError(f"Catalog request to {url} failed ({response.status_code})")

            self._rate_limiter.reset()
            return response

    async def list_repositories(self, server: str) -> list[str]:
        """List every repository of a registry.

        Args:
            server: Registry address, e.g. 'registry.local:5000'

        Returns:
            Repository names, qualified with the server unless it is Docker Hub

        Raises:
            RegistryError: If the catalog cannot be fetched
        """
        base = _base_url(server)
        url = f"{base}/v2/_catalog"
        params: dict[str, Any] | None = {"n": self.page_size}
        repositories: list[str] = []

        while True:
            response = await self._request(url, params, server)
            for name in response.json().get("repositories") or []:
                repositories.append(_qualify(server, name))

            next_link = response.links.get("next", {}).get("url")
            if not next_link:
                break
            url = next_link if next_link.startswith("http") else f"{base}{next_link}"
            params = None

        logger.info(f"Catalog of {_server_host(server)} lists {len(repositories)} repositories")
        return repositories
