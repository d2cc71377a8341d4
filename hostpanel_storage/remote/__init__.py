"""
Remote content store access.

Example:
    >>> from hostpanel_storage.remote import ContentStoreClient, GitHubContentsTransport
    >>> transport = GitHubContentsTransport(config)
    >>> client = ContentStoreClient(transport, repo_label=config.repo_full_name)
    >>> users = await client.fetch("database/users.json")
"""

from .client import ContentStoreClient, decode_content, encode_content
from .transport import (
    ContentsTransport,
    GitHubContentsTransport,
    InMemoryContentsTransport,
    blob_sha,
)
from .types import (
    ERROR_PAGE_PATH,
    HOSTING_ROOT,
    NOT_FOUND,
    PAYMENTS_PATH,
    PLANS_PATH,
    PROJECTS_PATH,
    SETTINGS_PATH,
    USERS_PATH,
    DirectoryEntry,
    NotFound,
    RemoteObject,
    TransportResponse,
    WriteResult,
    hosting_path,
)

__all__ = [
    # Client
    "ContentStoreClient",
    "decode_content",
    "encode_content",
    # Transports
    "ContentsTransport",
    "GitHubContentsTransport",
    "InMemoryContentsTransport",
    "blob_sha",
    # Types
    "NOT_FOUND",
    "NotFound",
    "RemoteObject",
    "DirectoryEntry",
    "TransportResponse",
    "WriteResult",
    # Paths
    "USERS_PATH",
    "PROJECTS_PATH",
    "PLANS_PATH",
    "PAYMENTS_PATH",
    "SETTINGS_PATH",
    "HOSTING_ROOT",
    "ERROR_PAGE_PATH",
    "hosting_path",
]
