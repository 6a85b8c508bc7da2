"""Image reference parsing and backend-specific normalization.

Examples:
    nginx                      → docker.io/library/nginx
    bitnami/redis:7            → docker.io/bitnami/redis:7
    index.docker.io/library/x  → docker.io/library/x
    myregistry.io/team/app     → myregistry.io/team/app
"""

import logging
import re
from dataclasses import dataclass

from scanrunner.consts import (
    DOCKER_DEFAULT_DOMAIN,
    DOCKER_LEGACY_DOMAINS,
    DOCKER_OFFICIAL_NAMESPACES,
)
from scanrunner.exceptions import InvalidReferenceError

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 255

_DOMAIN_RE = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)"
    r"(?:\.(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?))*"
    r"(?::[0-9]+)?$"
)
_PATH_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")


@dataclass(frozen=True)
class ParsedReference:
    """A fully qualified image reference."""

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @property
    def name(self) -> str:
        """Repository name without tag or digest."""
        return f"{self.domain}/{self.path}"

    @property
    def namespace(self) -> str:
        """First path segment (e.g., 'library' for docker.io/library/nginx)."""
        return self.path.split("/", 1)[0]

    def __str__(self) -> str:
        ref = self.name
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


def _is_domain(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def split_domain(name: str) -> tuple[str, str]:
    """Split a repository name into (domain, path), applying Docker Hub defaults.

    Single-segment Docker Hub names get the 'library' namespace.
    """
    first, sep, rest = name.partition("/")
    if sep and _is_domain(first):
        domain, remainder = first, rest
    else:
        domain, remainder = DOCKER_DEFAULT_DOMAIN, name

    if domain in DOCKER_LEGACY_DOMAINS:
        domain = DOCKER_DEFAULT_DOMAIN
    if domain == DOCKER_DEFAULT_DOMAIN and "/" not in remainder:
        remainder = f"library/{remainder}"
    return domain, remainder


def parse_reference(ref: str) -> ParsedReference:
    """Parse a reference into its canonical, fully qualified form.

    Args:
        ref: Image reference such as 'nginx', 'team/app:1.0' or
            'registry.local:5000/team/app@sha256:...'

    Returns:
        ParsedReference

    Raises:
        InvalidReferenceError: If the reference is malformed
    """
    value = ref.strip()
    if not value:
        raise InvalidReferenceError("Empty image reference")

    remainder, _, digest = value.partition("@")
    if digest and not _DIGEST_RE.match(digest):
        raise InvalidReferenceError(f"Invalid digest in reference {ref!r}")

    tag = None
    last_slash = remainder.rfind("/")
    last_colon = remainder.rfind(":")
    if last_colon > last_slash:
        remainder, tag = remainder[:last_colon], remainder[last_colon + 1 :]
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(f"Invalid tag in reference {ref!r}")

    if not remainder or len(remainder) > NAME_MAX_LENGTH:
        raise InvalidReferenceError(f"Invalid repository name in reference {ref!r}")

    domain, path = split_domain(remainder)
    if not _DOMAIN_RE.match(domain):
        raise InvalidReferenceError(f"Invalid registry domain {domain!r} in reference {ref!r}")
    for component in path.split("/"):
        if not _PATH_COMPONENT_RE.match(component):
            raise InvalidReferenceError(
                f"Invalid path component {component!r} in reference {ref!r}"
            )

    return ParsedReference(domain=domain, path=path, tag=tag, digest=digest or None)


def namespace_of(ref: str) -> str:
    """Return the first path segment of a reference's canonical form.

    Raises:
        InvalidReferenceError: If the reference is malformed
    """
    return parse_reference(ref).namespace


def normalize_for_docker(ref: str) -> str:
    """Normalize a pulled reference for lookups in the local docker store.

    For the default Docker Hub domain the domain is stripped, and an
    unqualified-image namespace ('library' or '_') is dropped when at least
    two path segments remain. The tag or digest is kept, so a lookup
    matches only the pulled image and not other local tags of the same
    repository. References on other registries are returned unchanged.

    Raises:
        InvalidReferenceError: If the reference is malformed
    """
    parsed = parse_reference(ref)
    if parsed.domain != DOCKER_DEFAULT_DOMAIN:
        return ref

    segments = parsed.path.split("/")
    if segments[0] in DOCKER_OFFICIAL_NAMESPACES and len(segments) >= 2:
        segments = segments[1:]
    ref = "/".join(segments)
    if parsed.tag:
        ref += f":{parsed.tag}"
    if parsed.digest:
        ref += f"@{parsed.digest}"
    return ref


def main():
    """Example usage of reference helpers."""
    for ref in ["nginx", "docker.io/library/nginx", "bitnami/redis:7", "myregistry.io/team/app"]:
        parsed = parse_reference(ref)
        print(f"{ref} → {parsed} (namespace={parsed.namespace}, docker={normalize_for_docker(ref)})")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    main()
