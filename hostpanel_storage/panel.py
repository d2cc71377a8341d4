"""
Hosting panel facade.

Wires the transport, client, cache, collection store and services together
from one StoreConfig.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .bootstrap import publish_error_page
from .cache import CollectionCache
from .config import StoreConfig
from .exceptions import RemoteTransportError
from .remote.client import ContentStoreClient
from .remote.transport import ContentsTransport, GitHubContentsTransport
from .remote.types import USERS_PATH
from .services.accounts import AccountService, Clock, utc_now
from .services.billing import BillingService
from .services.files import HostedFileWriter
from .services.projects import ProjectService
from .store import CollectionStore
from .watermark import WatermarkPolicy

logger = logging.getLogger(__name__)


class HostingPanel:
    """All panel services over one storage repository.

    Example:
        >>> async with await HostingPanel.create() as panel:
        ...     await panel.accounts.register("ada", "ada@example.com", "secret")
        ...     await panel.projects.deploy("ada", "blog", "index.html", html)
    """

    def __init__(
        self,
        config: StoreConfig,
        transport: ContentsTransport | None = None,
        clock: Clock | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """Initialize the panel.

        Args:
            config: Store configuration
            transport: Contents transport (defaults to the GitHub API)
            clock: Wall clock for timestamps and plan expiry
            monotonic: Clock for cache freshness
        """
        config.validate()
        clock = clock or utc_now

        self.config = config
        self.transport = transport or GitHubContentsTransport(config)
        self.client = ContentStoreClient(self.transport, repo_label=config.repo_full_name)
        self.cache = CollectionCache(
            self.client, USERS_PATH, ttl_seconds=config.users_cache_ttl, clock=monotonic
        )
        self.store = CollectionStore(self.client, self.cache, commit_retries=config.commit_retries)
        self.policy = WatermarkPolicy(config.brand_name, config.brand_url)
        self.files = HostedFileWriter(self.client, self.policy)

        self.accounts = AccountService(self.store, config, clock)
        self.billing = BillingService(self.store, self.accounts, clock)
        self.projects = ProjectService(
            self.store, self.accounts, self.billing, self.files, config, clock
        )

    @classmethod
    async def create(
        cls,
        config: StoreConfig | None = None,
        *,
        verify: bool = True,
        transport: ContentsTransport | None = None,
    ) -> HostingPanel:
        """Create a panel and optionally check the repository is reachable.

        Args:
            config: Store configuration (defaults to environment variables)
            verify: Probe the repository before returning
            transport: Contents transport override

        Raises:
            RemoteTransportError: If ``verify`` is set and the probe fails
        """
        if config is None:
            config = StoreConfig.from_environment()

        panel = cls(config, transport=transport)
        if verify and not await panel.client.verify_connection():
            await panel.close()
            raise RemoteTransportError("verify_connection", config.repo_full_name)
        logger.info(f"Hosting panel ready on {config.repo_full_name}")
        return panel

    async def publish_error_page(self, local_path: Path) -> bool:
        return await publish_error_page(self.client, local_path)

    async def close(self) -> None:
        """Release the transport."""
        await self.transport.close()

    async def __aenter__(self) -> HostingPanel:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
