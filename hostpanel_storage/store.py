"""
Collection store.

Typed read-modify-write over JSON collections kept in the remote store.

Two write styles are offered:
- ``save_collection``: last writer wins. The token is looked up right
  before the write, so a concurrent update made after our read is lost.
- ``mutate``: compare-and-swap. The token observed at read time is
  presented with the write; if someone else committed in between, the
  collection is re-read, the mutation re-applied and the write retried,
  up to ``commit_retries`` attempts.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any

from .cache import CollectionCache
from .exceptions import ConflictError, StoreReadError, StoreWriteError
from .remote.client import ContentStoreClient, decode_content
from .remote.types import NOT_FOUND, WriteResult

logger = logging.getLogger(__name__)

# A mutation edits the collection in place. Returning False means nothing
# changed and the write is skipped; any other return value (None included)
# commits.
Mutation = Callable[[Any], bool | None]

DEFAULT_COMMIT_RETRIES = 3


def _fresh_default(default: Any) -> Any:
    return copy.deepcopy(default)


def _coerce(value: Any, default: Any, path: str) -> Any:
    """Return ``value`` if it has the default's shape, else a copy of default."""
    if value is NOT_FOUND or value is None:
        return _fresh_default(default)
    if default is not None and not isinstance(value, type(default)):
        logger.warning(
            f"Collection {path} holds {type(value).__name__}, "
            f"expected {type(default).__name__}; using default"
        )
        return _fresh_default(default)
    return value


class CollectionStore:
    """Load, save and mutate JSON collections.

    Example:
        >>> store = CollectionStore(client, cache)
        >>> users = await store.load_collection("database/users.json", [])
        >>> await store.mutate(
        ...     "database/users.json",
        ...     lambda users: users.append({"username": "ada"}),
        ...     default=[],
        ...     message="Register",
        ... )
    """

    def __init__(
        self,
        client: ContentStoreClient,
        cache: CollectionCache | None = None,
        commit_retries: int = DEFAULT_COMMIT_RETRIES,
    ) -> None:
        """Initialize the store.

        Args:
            client: Remote content client
            cache: Read-through cache (reads go to the client when None)
            commit_retries: Attempts for an optimistic mutate
        """
        if commit_retries < 1:
            raise ValueError(f"commit_retries must be >= 1, got {commit_retries}")
        self.client = client
        self.cache = cache
        self.commit_retries = commit_retries

    async def load_collection(self, path: str, default: Any) -> Any:
        """Read a collection, treating absence or failure as ``default``.

        Args:
            path: Remote path of the collection
            default: Value used when the collection is missing, unreadable
                or not structured; a copy is returned, never the object itself

        Returns:
            The decoded collection
        """
        if self.cache is not None:
            value = await self.cache.read(path)
        else:
            value = await self.client.fetch(path)
        if value is None:
            logger.warning(f"Could not read {path}; treating as empty")
        return _coerce(value, default, path)

    async def save_collection(self, path: str, value: Any, message: str) -> bool:
        """Overwrite a collection (last writer wins).

        Returns:
            True if the write happened
        """
        return await self.client.put(path, value, message)

    async def mutate(
        self,
        path: str,
        mutation: Mutation,
        default: Any,
        message: str,
    ) -> Any:
        """Apply ``mutation`` to the current collection and commit it.

        The collection is always read fresh from the remote (not from the
        cache) so the token matches the content the mutation saw.

        Args:
            path: Remote path of the collection
            mutation: Edits the collection in place; return False to skip
                the write. Exceptions it raises abort without writing.
            default: Starting value when the collection does not exist yet
            message: Commit message

        Returns:
            The collection as committed (or as read, if the mutation made no
            change)

        Raises:
            StoreReadError: If the collection could not be read
            StoreWriteError: If the write was rejected or did not reach the remote
            ConflictError: If every attempt lost to a concurrent writer
        """
        for attempt in range(1, self.commit_retries + 1):
            remote = await self.client.fetch_object(path)
            if remote is None:
                raise StoreReadError(path)

            if remote is NOT_FOUND:
                value = _fresh_default(default)
                token = None
            else:
                value = _coerce(decode_content(remote.content), default, path)
                token = remote.token

            if mutation(value) is False:
                return value

            result = await self.client.put_object(path, value, message, token)
            if result is WriteResult.OK:
                if attempt > 1:
                    logger.info(f"Committed {path} on attempt {attempt}")
                return value
            if result is WriteResult.FAILED:
                raise StoreWriteError("write", path)

            logger.info(
                f"Concurrent update on {path}, retrying "
                f"(attempt {attempt}/{self.commit_retries})"
            )

        raise ConflictError(path, self.commit_retries)
