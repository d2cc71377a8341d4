"""
Configuration for the hosting store.

Configuration can be provided directly, via environment variables, or via a
YAML settings file:

```yaml
storage:
  github_username: "octo"
  github_token: "ghp_..."
  storage_repo: "Shamim-Cloud-Storage"
  branch: "main"
  request_timeout: 20
  users_cache_ttl: 60
admin:
  user: "owner"
  password: "change-me"
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import AuthenticationError, ValidationError

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_STORAGE_REPO = "Shamim-Cloud-Storage"
DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024


@dataclass
class StoreConfig:
    """Configuration for the remote content store and the services on top.

    Environment Variables:
        GITHUB_USERNAME: Owner of the storage repository
        GITHUB_TOKEN: Token with contents read/write scope
        STORAGE_REPO: Repository name (default: Shamim-Cloud-Storage)
        GITHUB_BRANCH: Branch to commit to (default: repository default)
        GITHUB_API_URL: API root (default: https://api.github.com)
        HOSTPANEL_REQUEST_TIMEOUT: Total seconds per remote request (default: 30)
        HOSTPANEL_MAX_RETRIES: Retries for transient failures (default: 3)
        HOSTPANEL_RETRY_DELAY: Base backoff delay in seconds (default: 1)
        HOSTPANEL_USERS_CACHE_TTL: User registry cache TTL in seconds (default: 60)
        HOSTPANEL_COMMIT_RETRIES: Optimistic commit attempts (default: 3)
        HOSTPANEL_MAX_UPLOAD_BYTES: Upload size limit (default: 25 MiB)
        ADMIN_USER / ADMIN_PASS: Built-in administrator credentials
        HOSTPANEL_BRAND_NAME / HOSTPANEL_BRAND_URL: Watermark branding

    Attributes:
        github_username: Owner of the storage repository
        github_token: API token
        storage_repo: Repository holding the database and hosted sites
        branch: Branch to read and commit (None for the default branch)
        api_url: Root of the contents API
        request_timeout: Total timeout for one remote request (seconds)
        max_retries: Retries for transient transport failures
        retry_delay: Base delay for exponential backoff (seconds)
        users_cache_ttl: Lifetime of the cached user registry (seconds)
        commit_retries: Attempts for an optimistic read-modify-write
        max_upload_bytes: Largest accepted deploy payload
        admin_user: Built-in administrator username (reserved on register)
        admin_pass: Built-in administrator password
        brand_name: Product name shown in the watermark
        brand_url: Link target of the watermark
    """

    github_username: str
    github_token: str
    storage_repo: str = DEFAULT_STORAGE_REPO
    branch: str | None = None
    api_url: str = DEFAULT_API_URL

    request_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0

    users_cache_ttl: float = 60.0
    commit_retries: int = 3
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    admin_user: str | None = None
    admin_pass: str | None = None

    brand_name: str = "ShamimCloud"
    brand_url: str = "https://shamimcloud.vercel.app"

    @property
    def repo_full_name(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.github_username}/{self.storage_repo}"

    @property
    def pages_base_url(self) -> str:
        """Return the public Pages URL the repository is served from."""
        return f"https://{self.github_username}.github.io/{self.storage_repo}"

    def validate(self) -> None:
        """Reject settings that would make the store misbehave.

        Raises:
            ValidationError: If a numeric setting is out of range
        """
        if self.request_timeout <= 0:
            raise ValidationError("request_timeout", "must be positive", str(self.request_timeout))
        if self.users_cache_ttl <= 0:
            raise ValidationError("users_cache_ttl", "must be positive", str(self.users_cache_ttl))
        if self.max_retries < 0:
            raise ValidationError("max_retries", "must be >= 0", str(self.max_retries))
        if self.commit_retries < 1:
            raise ValidationError("commit_retries", "must be >= 1", str(self.commit_retries))
        if self.max_upload_bytes <= 0:
            raise ValidationError(
                "max_upload_bytes", "must be positive", str(self.max_upload_bytes)
            )

    @classmethod
    def from_environment(cls) -> StoreConfig:
        """Create configuration from environment variables.

        Returns:
            StoreConfig populated from environment variables

        Raises:
            AuthenticationError: If GITHUB_USERNAME or GITHUB_TOKEN is missing
        """
        username = os.environ.get("GITHUB_USERNAME")
        token = os.environ.get("GITHUB_TOKEN")
        api_url = os.environ.get("GITHUB_API_URL", DEFAULT_API_URL)

        if not username:
            raise AuthenticationError(api_url, "GITHUB_USERNAME environment variable not set")
        if not token:
            raise AuthenticationError(api_url, "GITHUB_TOKEN environment variable not set")

        return cls(
            github_username=username,
            github_token=token,
            storage_repo=os.environ.get("STORAGE_REPO", DEFAULT_STORAGE_REPO),
            branch=os.environ.get("GITHUB_BRANCH") or None,
            api_url=api_url,
            request_timeout=float(os.environ.get("HOSTPANEL_REQUEST_TIMEOUT", "30")),
            max_retries=int(os.environ.get("HOSTPANEL_MAX_RETRIES", "3")),
            retry_delay=float(os.environ.get("HOSTPANEL_RETRY_DELAY", "1")),
            users_cache_ttl=float(os.environ.get("HOSTPANEL_USERS_CACHE_TTL", "60")),
            commit_retries=int(os.environ.get("HOSTPANEL_COMMIT_RETRIES", "3")),
            max_upload_bytes=int(
                os.environ.get("HOSTPANEL_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))
            ),
            admin_user=os.environ.get("ADMIN_USER"),
            admin_pass=os.environ.get("ADMIN_PASS"),
            brand_name=os.environ.get("HOSTPANEL_BRAND_NAME", "ShamimCloud"),
            brand_url=os.environ.get("HOSTPANEL_BRAND_URL", "https://shamimcloud.vercel.app"),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> StoreConfig:
        """Create configuration from a YAML settings file.

        Reads the ``storage`` section for store settings and the optional
        ``admin`` section for the built-in administrator. Unknown keys are
        ignored.

        Args:
            path: Path to the settings file

        Returns:
            StoreConfig populated from the file

        Raises:
            AuthenticationError: If the username or token is missing
        """
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        storage: dict[str, Any] = data.get("storage") or {}
        admin: dict[str, Any] = data.get("admin") or {}

        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in storage.items() if key in known}
        if admin.get("user"):
            values["admin_user"] = admin["user"]
        if admin.get("password"):
            values["admin_pass"] = admin["password"]

        api_url = values.get("api_url", DEFAULT_API_URL)
        if not values.get("github_username"):
            raise AuthenticationError(api_url, f"storage.github_username missing in {path}")
        if not values.get("github_token"):
            raise AuthenticationError(api_url, f"storage.github_token missing in {path}")

        return cls(**values)
