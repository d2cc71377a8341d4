"""
Shared test configuration and fixtures.

Everything runs against InMemoryContentsTransport, which answers like the
GitHub contents API (404 for missing paths, sha tokens, 409/422 on stale
writes) without touching the network. Clocks are injected so TTL and plan
expiry are deterministic.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest

from hostpanel_storage import HostingPanel, StoreConfig
from hostpanel_storage.cache import CollectionCache
from hostpanel_storage.remote import ContentStoreClient, InMemoryContentsTransport
from hostpanel_storage.store import CollectionStore

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC wall clock advanced by hand."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def transport() -> InMemoryContentsTransport:
    return InMemoryContentsTransport(owner="octo", repo="storage")


@pytest.fixture
def client(transport: InMemoryContentsTransport) -> ContentStoreClient:
    return ContentStoreClient(transport, repo_label="octo/storage")


@pytest.fixture
def cache(client: ContentStoreClient, clock: FakeClock) -> CollectionCache:
    return CollectionCache(client, ttl_seconds=60.0, clock=clock)


@pytest.fixture
def store(client: ContentStoreClient, cache: CollectionCache) -> CollectionStore:
    return CollectionStore(client, cache, commit_retries=3)


@pytest.fixture
def config() -> StoreConfig:
    return StoreConfig(
        github_username="octo",
        github_token="test-token",
        storage_repo="storage",
        admin_user="owner",
        admin_pass="owner-pass",
        max_upload_bytes=1024,
    )


@pytest.fixture
async def panel(
    config: StoreConfig,
    transport: InMemoryContentsTransport,
    wall_clock: FakeWallClock,
    clock: FakeClock,
) -> AsyncIterator[HostingPanel]:
    async with HostingPanel(config, transport=transport, clock=wall_clock, monotonic=clock) as p:
        yield p
