"""Containerd runtime driven through the `ctr` CLI."""

import asyncio
import logging
import os
from dataclasses import dataclass

from scanrunner.consts import (
    CONTAINERD_NAMESPACE,
    CONTAINERD_NAMESPACE_ENV,
    CTR_PATH,
    REGISTRY_PULL_TIMEOUT,
)
from scanrunner.exceptions import RuntimeBackendError
from scanrunner.models.model_scanner import ImageHandle
from scanrunner.runtime.base import ImageRuntime

logger = logging.getLogger(__name__)


@dataclass
class ImageRow:
    """One row of `ctr images ls`."""

    ref: str
    digest: str


def _ref_name(ref: str) -> str:
    """Strip tag and digest from a reference."""
    name = ref.split("@", 1)[0]
    last_slash = name.rfind("/")
    last_colon = name.rfind(":")
    if last_colon > last_slash:
        name = name[:last_colon]
    return name


def _redact(cmd: list[str]) -> list[str]:
    """Hide the credentials following --user."""
    shown = list(cmd)
    for i, arg in enumerate(shown[:-1]):
        if arg == "--user":
            shown[i + 1] = "***"
    return shown


class ContainerdRuntime(ImageRuntime):
    """Image introspection against containerd.

    Image ids are manifest digests as listed by `ctr images ls`.
    """

    def __init__(
        self,
        namespace: str | None = None,
        ctr_path: str = CTR_PATH,
        timeout: int = REGISTRY_PULL_TIMEOUT,
    ):
        """Initialize ContainerdRuntime.

        Args:
            namespace: containerd namespace (default: env SCANRUNNER_CONTAINERD_NAMESPACE, then k8s.io)
            ctr_path: Path to the ctr executable
            timeout: Timeout in seconds for a single ctr call
        """
        self.namespace = namespace or os.getenv(CONTAINERD_NAMESPACE_ENV, "").strip() or CONTAINERD_NAMESPACE
        self.ctr_path = ctr_path
        self.timeout = timeout

    @property
    def kind(self) -> str:
        return "containerd"

    async def run_ctr(self, *args: str) -> str:
        """Run a ctr subcommand in the configured namespace.

        Returns:
            Decoded stdout

        Raises:
            RuntimeBackendError: On spawn failure, timeout or non-zero exit
        """
        cmd = [self.ctr_path, "-n", self.namespace, *args]
        logger.debug(f"Running: {' '.join(_redact(cmd))}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RuntimeBackendError(f"Cannot run {self.ctr_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout,
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise RuntimeBackendError(f"ctr {args[0]} timeout ({self.timeout}s)")

        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeBackendError(f"ctr error (code {process.returncode}): {error_msg[:1000]}")

        return stdout.decode("utf-8", errors="replace")

    async def _list_rows(self) -> list[ImageRow]:
        output = await self.run_ctr("images", "ls")
        rows = []
        for line in output.splitlines():
            parts = line.split()
            # REF TYPE DIGEST SIZE PLATFORMS LABELS
            if len(parts) < 3 or parts[0] == "REF":
                continue
            rows.append(ImageRow(ref=parts[0], digest=parts[2]))
        return rows

    async def open_image(self, image_id: str) -> ImageHandle:
        rows = await self._list_rows()

        digest = image_id
        by_ref = [r for r in rows if r.ref == image_id]
        if by_ref:
            digest = by_ref[0].digest

        refs = [r.ref for r in rows if r.digest == digest]
        if not refs:
            raise RuntimeBackendError(f"Image not found: {image_id}")
        return ImageHandle(id=digest, repo_refs=refs, runtime=self.kind)

    async def find_image_ids(self, ref: str) -> list[str]:
        rows = await self._list_rows()
        has_version = "@" in ref or _ref_name(ref) != ref

        ids: list[str] = []
        for row in rows:
            matched = row.ref == ref if has_version else _ref_name(row.ref) == ref
            if matched and row.digest not in ids:
                ids.append(row.digest)

        logger.debug(f"Found {len(ids)} local images for {ref}")
        return ids

    async def list_image_ids(self) -> list[str]:
        rows = await self._list_rows()
        ids: list[str] = []
        for row in rows:
            if row.digest not in ids:
                ids.append(row.digest)
        return ids
