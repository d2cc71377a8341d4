"""
Data types for the remote content store.

The remote store is path addressed. A path holds either a file (content plus
a concurrency token) or a directory (a listing of entries).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

# Collection paths inside the storage repository
USERS_PATH = "database/users.json"
PROJECTS_PATH = "database/projects.json"
PLANS_PATH = "database/plans.json"
PAYMENTS_PATH = "database/payments.json"
SETTINGS_PATH = "database/settings.json"

HOSTING_ROOT = "hosting"
ERROR_PAGE_PATH = "404.html"


class _NotFoundType:
    """Sentinel type for a path the remote store reports as missing.

    Falsy, so ``value or default`` keeps working at call sites that do not
    care about the difference between "absent" and "failed".
    """

    _instance: _NotFoundType | None = None

    def __new__(cls) -> _NotFoundType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFoundType()
NotFound = _NotFoundType


class WriteResult(Enum):
    """Outcome of a token-carrying write."""

    OK = "ok"
    CONFLICT = "conflict"  # Token no longer matches the remote version
    FAILED = "failed"  # Transport failure or any other rejection

    @property
    def ok(self) -> bool:
        return self is WriteResult.OK


@dataclass
class RemoteObject:
    """A file in the remote store.

    Attributes:
        path: Path within the repository
        content: Raw (decoded from base64) file bytes
        token: Concurrency token (content hash) to present on update/delete
    """

    path: str
    content: bytes
    token: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class DirectoryEntry:
    """One entry of a directory listing."""

    name: str
    path: str
    type: str  # "file" or "dir"
    size: int = 0
    download_url: str | None = None
    token: str | None = None

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "size": self.size,
            "download_url": self.download_url,
            "sha": self.token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryEntry:
        """Create from a contents API listing item."""
        return cls(
            name=data["name"],
            path=data["path"],
            type=data.get("type", "file"),
            size=int(data.get("size") or 0),
            download_url=data.get("download_url"),
            token=data.get("sha"),
        )


@dataclass
class TransportResponse:
    """Status and decoded JSON body of one contents API call."""

    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def hosting_path(project: str, file_name: str | None = None) -> str:
    """Return the remote path of a project directory or one of its files."""
    base = f"{HOSTING_ROOT}/{project}"
    if file_name:
        return f"{base}/{file_name}"
    return base
