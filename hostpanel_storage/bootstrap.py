"""
Startup tasks for the storage repository.

The repository root carries a custom ``404.html`` so that missing Pages
routes show a branded page. It is refreshed from the local copy every time
the panel starts.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from .remote.client import ContentStoreClient
from .remote.types import ERROR_PAGE_PATH

logger = logging.getLogger(__name__)


async def read_local_text(path: Path) -> str | None:
    """Read a local UTF-8 file, or return None if it does not exist."""
    if not await aiofiles.os.path.isfile(path):
        return None
    async with aiofiles.open(path, encoding="utf-8") as f:
        return await f.read()


async def publish_error_page(client: ContentStoreClient, local_path: Path) -> bool:
    """Publish the local 404 page at the repository root.

    Args:
        client: Remote content client
        local_path: Path of the local ``404.html``

    Returns:
        True if the page was published, False if the file is missing or the
        write did not happen
    """
    content = await read_local_text(Path(local_path))
    if content is None:
        logger.info(f"No local error page at {local_path}; skipping")
        return False

    published = await client.put(ERROR_PAGE_PATH, content, "Deploy Custom 404")
    if published:
        logger.info(f"Custom {ERROR_PAGE_PATH} synced")
    else:
        logger.error(f"Failed to sync {ERROR_PAGE_PATH}")
    return published
