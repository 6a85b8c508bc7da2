"""Host mode: scan images already present in a local runtime."""

import logging

from scanrunner.models.model_scanner import ScanSummary
from scanrunner.runtime.base import ImageRuntime
from scanrunner.session import ScanSession

logger = logging.getLogger(__name__)


async def resolve_host_images(runtime: ImageRuntime, refs: list[str]) -> list[str]:
    """Resolve caller-supplied references to local image ids.

    With no references every local image is returned. References that match
    nothing are logged and skipped.
    """
    if not refs:
        return await runtime.list_image_ids()

    ids: list[str] = []
    for ref in refs:
        try:
            matched = await runtime.find_image_ids(ref)
        except Exception as e:
            logger.error(f"Failed to resolve {ref}: {e}")
            continue
        if not matched:
            logger.warning(f"No local image matches {ref}")
        for image_id in matched:
            if image_id not in ids:
                ids.append(image_id)
    return ids


async def scan_host_images(
    session: ScanSession,
    runtime: ImageRuntime,
    refs: list[str],
) -> list[ScanSummary]:
    """Scan local images one after another.

    A failure to open or scan one image is logged and the next image is
    scanned. Stops early when the session is cancelled.
    """
    image_ids = await resolve_host_images(runtime, refs)
    logger.info(f"Resolved {len(image_ids)} local images")

    summaries: list[ScanSummary] = []
    for image_id in image_ids:
        if session.cancelled.is_set():
            logger.warning("Scan cancelled, skipping remaining images")
            break
        try:
            image = await runtime.open_image(image_id)
            summaries.append(await session.scan(image))
        except Exception as e:
            logger.error(f"Failed to scan image {image_id}: {e}")
    return summaries
