"""Tests for the user registry cache."""

from __future__ import annotations

from typing import Any

import pytest

from hostpanel_storage.cache import CollectionCache
from hostpanel_storage.remote import (
    NOT_FOUND,
    PROJECTS_PATH,
    USERS_PATH,
    ContentStoreClient,
    InMemoryContentsTransport,
)
from hostpanel_storage.remote.types import TransportResponse

USERS = [{"username": "ada", "plan": "free"}]


class TestCollectionCache:
    """Tests for CollectionCache."""

    async def test_reads_within_ttl_hit_cache(
        self, cache: CollectionCache, transport: InMemoryContentsTransport
    ) -> None:
        """Two reads without a write give identical snapshots and one fetch."""
        transport.seed(USERS_PATH, USERS)

        first = await cache.read(USERS_PATH)
        second = await cache.read(USERS_PATH)

        assert first == second == USERS
        assert transport.calls["get"] == 1
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    async def test_reads_are_isolated_copies(
        self, cache: CollectionCache, transport: InMemoryContentsTransport
    ) -> None:
        """Editing a returned snapshot does not change the cached one."""
        transport.seed(USERS_PATH, USERS)

        snapshot = await cache.read(USERS_PATH)
        snapshot.append({"username": "mallory"})
        snapshot[0]["plan"] = "vip"

        assert await cache.read(USERS_PATH) == USERS

    async def test_entry_expires_after_ttl(
        self, cache: CollectionCache, transport: InMemoryContentsTransport, clock
    ) -> None:
        """A read after the TTL goes to the remote again."""
        transport.seed(USERS_PATH, USERS)
        await cache.read(USERS_PATH)

        clock.advance(59.9)
        await cache.read(USERS_PATH)
        assert transport.calls["get"] == 1

        clock.advance(0.2)
        await cache.read(USERS_PATH)
        assert transport.calls["get"] == 2

    async def test_write_invalidates(
        self,
        cache: CollectionCache,
        client: ContentStoreClient,
        transport: InMemoryContentsTransport,
    ) -> None:
        """The read after a write never sees the pre-write entry."""
        transport.seed(USERS_PATH, USERS)
        await cache.read(USERS_PATH)

        updated = USERS + [{"username": "grace", "plan": "pro"}]
        assert await client.put(USERS_PATH, updated, "Register")

        assert not cache.is_cached()
        assert await cache.read(USERS_PATH) == updated

    async def test_failed_write_invalidates(
        self,
        cache: CollectionCache,
        client: ContentStoreClient,
        transport: InMemoryContentsTransport,
    ) -> None:
        """A write attempt drops the entry even when it fails."""
        transport.seed(USERS_PATH, USERS)
        await cache.read(USERS_PATH)

        transport.fail_next("put", status=500)
        assert not await client.put(USERS_PATH, [], "Wipe")

        assert not cache.is_cached()
        assert cache.stats()["invalidations"] == 1

    async def test_delete_invalidates(
        self,
        cache: CollectionCache,
        client: ContentStoreClient,
        transport: InMemoryContentsTransport,
    ) -> None:
        transport.seed(USERS_PATH, USERS)
        await cache.read(USERS_PATH)

        assert await client.delete(USERS_PATH, "Reset")
        assert await cache.read(USERS_PATH) is NOT_FOUND

    async def test_fetch_racing_invalidation_is_not_cached(self, clock) -> None:
        """A fetch that began before an invalidation does not repopulate."""

        class InterleavingTransport(InMemoryContentsTransport):
            on_get: Any = None

            async def get_contents(self, path: str) -> TransportResponse:
                response = await super().get_contents(path)
                if self.on_get is not None:
                    self.on_get(path)
                return response

        transport = InterleavingTransport()
        transport.seed(USERS_PATH, USERS)
        cache = CollectionCache(ContentStoreClient(transport), clock=clock)
        transport.on_get = cache.invalidate

        assert await cache.read(USERS_PATH) == USERS
        assert not cache.is_cached()

    async def test_other_paths_pass_through(
        self, cache: CollectionCache, transport: InMemoryContentsTransport
    ) -> None:
        """Only the designated path is cached."""
        transport.seed(PROJECTS_PATH, [{"name": "blog"}])

        await cache.read(PROJECTS_PATH)
        await cache.read(PROJECTS_PATH)

        assert transport.calls["get"] == 2
        assert not cache.is_cached()

    async def test_missing_and_failed_reads_not_cached(
        self, cache: CollectionCache, transport: InMemoryContentsTransport
    ) -> None:
        assert await cache.read(USERS_PATH) is NOT_FOUND
        assert not cache.is_cached()

        transport.seed(USERS_PATH, USERS)
        transport.fail_next("get")
        assert await cache.read(USERS_PATH) is None
        assert not cache.is_cached()

    def test_ttl_must_be_positive(self, client: ContentStoreClient) -> None:
        with pytest.raises(ValueError):
            CollectionCache(client, ttl_seconds=0)
