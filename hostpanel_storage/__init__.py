"""
Hostpanel Storage

Storage core of a static-site hosting control panel that keeps its whole
database (users, projects, plans, payments) and every hosted site as files
in one GitHub repository.

Provides:
- Remote content store client with version tokens and NOT_FOUND/failure
  distinction
- TTL cache for the user registry, invalidated on every write
- Idempotent branded-watermark policy for hosted HTML
- Collection store with optimistic read-modify-write
- Account, project and billing services on top

Usage:

    >>> from hostpanel_storage import HostingPanel, StoreConfig
    >>> config = StoreConfig.from_environment()
    >>> async with await HostingPanel.create(config) as panel:
    ...     await panel.accounts.register("ada", "ada@example.com", "secret")
    ...     url = await panel.projects.deploy("ada", "blog", "index.html", html_bytes)

Testing without the network:

    from hostpanel_storage.remote import InMemoryContentsTransport

    panel = HostingPanel(config, transport=InMemoryContentsTransport())
"""

from .cache import CollectionCache
from .config import StoreConfig
from .exceptions import (
    AuthenticationError,
    BackupNotFoundError,
    ConflictError,
    HostingStoreError,
    InvalidCredentialsError,
    PendingPaymentExistsError,
    ProjectLimitError,
    ProjectNotFoundError,
    RemoteTransportError,
    ReservedUsernameError,
    StoreReadError,
    StoreWriteError,
    UploadTooLargeError,
    UserExistsError,
    UserNotFoundError,
    ValidationError,
)
from .logging_utils import configure_structured_logging, get_store_logger
from .panel import HostingPanel
from .records import PlanTier, ProjectStatus, Role, check_expiry, upsert_by_key
from .remote import (
    NOT_FOUND,
    ContentStoreClient,
    ContentsTransport,
    GitHubContentsTransport,
    InMemoryContentsTransport,
    WriteResult,
)
from .store import CollectionStore
from .watermark import WatermarkPolicy, apply_policy

__all__ = [
    # Facade
    "HostingPanel",
    "StoreConfig",
    # Core
    "ContentStoreClient",
    "ContentsTransport",
    "GitHubContentsTransport",
    "InMemoryContentsTransport",
    "CollectionCache",
    "CollectionStore",
    "WatermarkPolicy",
    "apply_policy",
    "NOT_FOUND",
    "WriteResult",
    # Records
    "PlanTier",
    "Role",
    "ProjectStatus",
    "check_expiry",
    "upsert_by_key",
    # Logging
    "configure_structured_logging",
    "get_store_logger",
    # Exceptions
    "HostingStoreError",
    "RemoteTransportError",
    "StoreReadError",
    "StoreWriteError",
    "ConflictError",
    "AuthenticationError",
    "ValidationError",
    "UserExistsError",
    "ReservedUsernameError",
    "UserNotFoundError",
    "InvalidCredentialsError",
    "ProjectNotFoundError",
    "ProjectLimitError",
    "UploadTooLargeError",
    "BackupNotFoundError",
    "PendingPaymentExistsError",
]

__version__ = "0.1.0"
