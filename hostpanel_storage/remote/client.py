"""
Remote content store client.

Wraps a contents transport with the semantics the rest of the store needs:
- fetch by path with base64 + JSON decoding (text/bytes fallback)
- put with the concurrency token of the current version
- idempotent delete
- write listeners (the user registry cache) notified on every write attempt

Transport failures never escape this module. They are logged and turned
into ``None`` (reads) or ``False``/``WriteResult.FAILED`` (writes), which
callers must read as "the operation did not happen", not as a statement
about the remote state.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from typing import Any

from ..exceptions import RemoteTransportError
from ..logging_utils import StoreLoggerAdapter
from .transport import ContentsTransport
from .types import (
    NOT_FOUND,
    DirectoryEntry,
    NotFound,
    RemoteObject,
    TransportResponse,
    WriteResult,
)

logger = logging.getLogger(__name__)

# Statuses the contents API answers when the presented sha is stale or missing
CONFLICT_STATUSES = (409, 422)

WriteListener = Callable[[str], None]


def encode_content(content: Any) -> bytes:
    """Encode content for upload.

    Bytes are sent as-is, strings as UTF-8 and anything else as indented JSON.
    """
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


def decode_content(data: bytes) -> Any:
    """Decode downloaded bytes.

    Tries JSON first, then plain UTF-8 text. Content that is not valid UTF-8
    (images, fonts) is returned as raw bytes.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return data
    try:
        return json.loads(text)
    except ValueError:
        return text


def _error_message(response: TransportResponse) -> str:
    if isinstance(response.body, dict):
        return str(response.body.get("message", ""))
    return str(response.body or "")


class ContentStoreClient:
    """Client for the remote versioned file store.

    Example:
        >>> client = ContentStoreClient(transport, repo_label="octo/storage")
        >>> users = await client.fetch("database/users.json")
        >>> await client.put("database/users.json", users, "Register")
    """

    def __init__(
        self,
        transport: ContentsTransport,
        repo_label: str = "",
    ) -> None:
        """Initialize the client.

        Args:
            transport: Wire-level transport to the contents API
            repo_label: Repository name attached to log records
        """
        self.transport = transport
        self.repo_label = repo_label
        self._log = StoreLoggerAdapter(logger, {"repo": repo_label})
        self._write_listeners: list[WriteListener] = []

    def add_write_listener(self, listener: WriteListener) -> None:
        """Register a callback invoked with the path of every write attempt."""
        self._write_listeners.append(listener)

    def _notify_write(self, path: str) -> None:
        for listener in self._write_listeners:
            listener(path)

    # =========================================================================
    # Reads
    # =========================================================================

    async def _get(self, path: str) -> TransportResponse | NotFound | None:
        try:
            response = await self.transport.get_contents(path)
        except RemoteTransportError as e:
            self._log.error(f"Error fetching {path}: {e}")
            return None

        if response.status == 404:
            return NOT_FOUND
        if not response.ok:
            self._log.error(
                f"Error fetching {path}: HTTP {response.status} {_error_message(response)}"
            )
            return None
        return response

    async def _file_bytes(self, path: str, body: dict[str, Any]) -> bytes | None:
        # Files above 1 MB come back without inline content
        if body.get("encoding") == "none" or (body.get("content") == "" and body.get("size")):
            try:
                return await self.transport.get_raw_contents(path)
            except RemoteTransportError as e:
                self._log.error(f"Error downloading {path}: {e}")
                return None
        try:
            return base64.b64decode(body.get("content") or "")
        except ValueError as e:
            self._log.error(f"Malformed content encoding for {path}: {e}")
            return None

    async def fetch(self, path: str) -> Any:
        """Fetch and decode the content at ``path``.

        Returns:
            Decoded JSON, text or bytes for a file; a list of DirectoryEntry
            for a directory; NOT_FOUND when the path is missing; None when
            the request failed
        """
        response = await self._get(path)
        if response is NOT_FOUND or response is None:
            return response

        body = response.body
        if isinstance(body, list):
            return [DirectoryEntry.from_dict(item) for item in body]
        if not isinstance(body, dict):
            self._log.error(f"Unexpected response shape for {path}")
            return None

        data = await self._file_bytes(path, body)
        if data is None:
            return None
        return decode_content(data)

    async def fetch_object(self, path: str) -> RemoteObject | NotFound | None:
        """Fetch the raw bytes and concurrency token of a file.

        Returns:
            RemoteObject, NOT_FOUND when missing, None on failure or when
            the path is a directory
        """
        response = await self._get(path)
        if response is NOT_FOUND or response is None:
            return response

        body = response.body
        if not isinstance(body, dict):
            self._log.warning(f"Expected a file at {path}, found a directory")
            return None

        data = await self._file_bytes(path, body)
        if data is None:
            return None
        return RemoteObject(path=path, content=data, token=body.get("sha"))

    async def list_directory(self, path: str) -> list[DirectoryEntry] | NotFound | None:
        """List a directory.

        Returns:
            Entries, NOT_FOUND when missing, None on failure or when the
            path is a file
        """
        response = await self._get(path)
        if response is NOT_FOUND or response is None:
            return response
        # A file holding a JSON array decodes to a list too; only the raw body tells
        if isinstance(response.body, list):
            return [DirectoryEntry.from_dict(item) for item in response.body]
        self._log.warning(f"Expected a directory at {path}, found a file")
        return None

    async def _current_token(self, path: str) -> str | NotFound | None:
        """Return the sha of ``path``, NOT_FOUND if absent, None on failure."""
        response = await self._get(path)
        if response is NOT_FOUND or response is None:
            return response
        if not isinstance(response.body, dict) or "sha" not in response.body:
            self._log.warning(f"Cannot resolve a token for {path}: not a file")
            return None
        return response.body["sha"]

    # =========================================================================
    # Writes
    # =========================================================================

    async def _submit(
        self, path: str, content: Any, message: str, token: str | None
    ) -> WriteResult:
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(encode_content(content)).decode("ascii"),
        }
        if token:
            payload["sha"] = token

        try:
            response = await self.transport.put_contents(path, payload)
        except RemoteTransportError as e:
            self._log.error(f"Error saving {path}: {e}")
            return WriteResult.FAILED

        if response.ok:
            self._log.debug(f"Committed {path}: {message}")
            return WriteResult.OK
        if response.status in CONFLICT_STATUSES:
            self._log.warning(
                f"Stale token for {path} (HTTP {response.status}): {_error_message(response)}"
            )
            return WriteResult.CONFLICT
        self._log.error(
            f"Error saving {path}: HTTP {response.status} {_error_message(response)}"
        )
        return WriteResult.FAILED

    async def put(self, path: str, content: Any, message: str) -> bool:
        """Create or overwrite ``path`` with the latest token.

        The token is looked up immediately before the write, so a change
        made by someone else in between is silently overwritten if the
        token still matches, and reported as a failure if it does not.

        Args:
            path: Remote path
            content: bytes, str, or a JSON-serializable value
            message: Commit message

        Returns:
            True if the remote accepted the write
        """
        try:
            token = await self._current_token(path)
            if token is None:
                self._log.error(f"Error saving {path}: could not resolve current version")
                return False
            if token is NOT_FOUND:
                token = None
            result = await self._submit(path, content, message, token)
            return result.ok
        finally:
            self._notify_write(path)

    async def put_object(
        self, path: str, content: Any, message: str, token: str | None
    ) -> WriteResult:
        """Write ``path`` presenting a token observed earlier.

        Used for compare-and-swap: the remote rejects the write with
        ``CONFLICT`` when the file changed since ``token`` was read.

        Args:
            path: Remote path
            content: bytes, str, or a JSON-serializable value
            message: Commit message
            token: Token from a previous fetch_object, or None to create

        Returns:
            WriteResult
        """
        try:
            return await self._submit(path, content, message, token)
        finally:
            self._notify_write(path)

    async def delete(self, path: str, message: str) -> bool:
        """Delete ``path``.

        A path that does not exist counts as already deleted.

        Returns:
            True if the path is gone (deleted now or never existed)
        """
        try:
            token = await self._current_token(path)
            if token is NOT_FOUND:
                return True
            if token is None:
                self._log.error(f"Delete failed for {path}: could not resolve current version")
                return False

            try:
                response = await self.transport.delete_contents(
                    path, {"message": message, "sha": token}
                )
            except RemoteTransportError as e:
                self._log.error(f"Delete failed for {path}: {e}")
                return False

            if response.ok or response.status == 404:
                return True
            self._log.error(
                f"Delete failed for {path}: HTTP {response.status} {_error_message(response)}"
            )
            return False
        finally:
            self._notify_write(path)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def verify_connection(self) -> bool:
        """Probe the storage repository and log the outcome."""
        try:
            response = await self.transport.get_repository()
        except RemoteTransportError as e:
            self._log.critical(f"Could not connect to {self.repo_label}: {e}")
            return False

        if response.ok:
            self._log.info(f"Connected to {self.repo_label} successfully.")
            return True

        self._log.critical(
            f"Could not connect to {self.repo_label}: HTTP {response.status} "
            f"{_error_message(response)}"
        )
        self._log.critical("Check GITHUB_USERNAME, STORAGE_REPO and GITHUB_TOKEN.")
        return False
