"""Registry mode: pull each repository, scan its images, then remove them."""

import logging

from scanrunner.consts import DEFAULT_SERVER
from scanrunner.exceptions import InvalidReferenceError, NamespaceError
from scanrunner.models.model_scanner import RegistryScanResult, RepositoryResult
from scanrunner.registry.base import RegistryClient
from scanrunner.scanner.reference import namespace_of
from scanrunner.session import ScanSession

logger = logging.getLogger(__name__)


class RegistryScanner:
    """Drives the acquisition workflow for one scan session.

    Repositories are processed one at a time: pull, resolve local image ids,
    scan every matched image, and always remove what was pulled.
    """

    def __init__(
        self,
        client: RegistryClient,
        session: ScanSession,
        server: str = DEFAULT_SERVER,
    ):
        """Initialize RegistryScanner.

        Args:
            client: Registry client of the selected runtime backend
            session: Open scan session
            server: Registry server whose catalog is used when no
                repositories are given
        """
        self.client = client
        self.session = session
        self.server = server

    async def resolve_repositories(self, args: list[str]) -> list[str]:
        """Build the candidate repository list.

        With no arguments the server catalog is enumerated. Otherwise each
        argument is parsed into its canonical form; invalid ones are logged
        and skipped.

        Raises:
            RegistryError: If the catalog cannot be fetched
        """
        if not args:
            logger.info(f"Listing catalog of {self.server}")
            return await self.client.list_catalog(self.server)

        repositories = []
        for arg in args:
            try:
                repositories.append(self.client.parse_reference(arg))
            except InvalidReferenceError as e:
                logger.error(f"Skipping {arg!r}: {e}")
        return repositories

    @staticmethod
    def filter_namespace(repositories: list[str], namespace: str) -> list[str]:
        """Keep repositories whose first path segment equals namespace.

        Repositories are grouped by the namespace of their canonical form;
        the original strings are returned in input order.

        Raises:
            NamespaceError: If no repository belongs to the namespace
        """
        groups: dict[str, list[str]] = {}
        for repo in repositories:
            try:
                groups.setdefault(namespace_of(repo), []).append(repo)
            except InvalidReferenceError as e:
                logger.warning(f"Ignoring {repo!r} for namespace grouping: {e}")

        matched = groups.get(namespace)
        if not matched:
            raise NamespaceError(f"Namespace {namespace!r} matches no repository")

        logger.info(f"Namespace {namespace!r}: {len(matched)}/{len(repositories)} repositories")
        return matched

    async def _cleanup(self, result: RepositoryResult, image_ids: list[str]) -> None:
        """Remove every artifact pulled for a repository; failures are logged."""
        for target in self.client.cleanup_targets(result.pulled, image_ids):
            try:
                await self.client.remove(target)
                result.removed.append(target)
            except Exception as e:
                logger.warning(f"Failed to remove {target}: {e}")

    async def scan_repository(self, repository: str) -> RepositoryResult:
        """Pull, scan and clean up one repository.

        Never raises: a failed pull or lookup is recorded in the result and
        failed images are listed in result.failed.
        """
        result = RepositoryResult(repository=repository)

        try:
            result.pulled = await self.client.pull(repository)
        except Exception as e:
            logger.error(f"Failed to pull {repository}: {e}")
            result.error = str(e)
            return result

        image_ids: list[str] = []
        try:
            lookup = self.client.normalize_reference(result.pulled)
            image_ids = await self.client.runtime.find_image_ids(lookup)
            if not image_ids:
                logger.warning(f"No local image found for {result.pulled} (looked up as {lookup})")

            for image_id in image_ids:
                try:
                    image = await self.client.runtime.open_image(image_id)
                    await self.session.scan(image)
                    result.scanned.append(image_id)
                except Exception as e:
                    logger.error(f"Failed to scan {repository} ({image_id}): {e}")
                    result.failed.append(image_id)
        except Exception as e:
            logger.error(f"Failed to scan {repository}: {e}")
            result.error = str(e)
        finally:
            await self._cleanup(result, image_ids)

        return result

    async def run(
        self,
        args: list[str],
        namespace: str | None = None,
        tags: list[str] | None = None,
    ) -> RegistryScanResult:
        """Run the workflow over the resolved repositories.

        Args:
            args: Explicit repositories; empty to use the server catalog
            namespace: Optional namespace filter
            tags: Requested tags (recorded only, not enforced)

        Returns:
            RegistryScanResult with one entry per attempted repository

        Raises:
            NamespaceError: If the namespace filter matches nothing
            RegistryError: If the catalog cannot be fetched
        """
        if tags:
            logger.info(f"Tags {', '.join(tags)} requested; the pulled reference's own tag is scanned")

        repositories = await self.resolve_repositories(args)
        if namespace:
            repositories = self.filter_namespace(repositories, namespace)

        logger.info(f"Scanning {len(repositories)} repositories with {self.client.kind}")

        scan_result = RegistryScanResult()
        for repository in repositories:
            if self.session.cancelled.is_set():
                logger.warning("Scan cancelled, skipping remaining repositories")
                break

            repo_result = await self.scan_repository(repository)
            scan_result.repositories.append(repo_result)
            if repo_result.error:
                logger.info(f"✗ {repository}: {repo_result.error}")
            else:
                logger.info(
                    f"✓ {repository}: {len(repo_result.scanned)} scanned, "
                    f"{len(repo_result.failed)} failed, {len(repo_result.removed)} removed"
                )

        return scan_result
