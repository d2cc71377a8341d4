"""
Single write path for hosted site files.

Every operation that creates or changes a file under ``hosting/`` (deploy,
editor save, maintenance and archive pages, restores) goes through
``HostedFileWriter.write`` so the watermark policy cannot be bypassed.
"""

from __future__ import annotations

import logging
import posixpath

from ..records import PlanTier
from ..remote.client import ContentStoreClient
from ..remote.types import hosting_path
from ..watermark import ENTRY_FILE_NAME, WatermarkPolicy, is_entry_file

logger = logging.getLogger(__name__)

HTML_EXTENSIONS = (".html", ".htm")


def is_html_file(file_name: str) -> bool:
    return posixpath.splitext(file_name)[1].lower() in HTML_EXTENSIONS


class HostedFileWriter:
    """Writes hosted files, applying the watermark policy to HTML pages.

    HTML files are normalised through the policy: the entry page of a
    free-plan project gets exactly one watermark, every other page gets
    none. Non-HTML files are written byte for byte; HTML uploads keep
    their original bytes around the marker, even when not valid UTF-8.
    """

    def __init__(
        self,
        client: ContentStoreClient,
        policy: WatermarkPolicy,
        entry_file_name: str = ENTRY_FILE_NAME,
    ):
        self.client = client
        self.policy = policy
        self.entry_file_name = entry_file_name

    def render(self, file_name: str, content: bytes | str, tier: PlanTier | str) -> bytes | str:
        """Return the content that will actually be stored."""
        if not is_html_file(file_name):
            return content

        entry = is_entry_file(file_name, self.entry_file_name)
        if isinstance(content, str):
            return self.policy.apply(content, entry, tier)

        # Bytes that are not UTF-8 survive the round trip unchanged
        text = content.decode("utf-8", "surrogateescape")
        return self.policy.apply(text, entry, tier).encode("utf-8", "surrogateescape")

    async def write(
        self,
        project: str,
        file_name: str,
        content: bytes | str,
        tier: PlanTier | str,
        message: str,
    ) -> bool:
        """Store a hosted file.

        Args:
            project: Project name
            file_name: File name within the project
            content: Raw upload or edited text
            tier: Plan tier of the project owner
            message: Commit message

        Returns:
            True if the remote accepted the write
        """
        path = hosting_path(project, file_name)
        logger.debug(f"Writing {path} (tier={tier})")
        return await self.client.put(path, self.render(file_name, content, tier), message)
