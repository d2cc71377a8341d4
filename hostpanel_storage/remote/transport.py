"""
Transports for the remote contents API.

A transport speaks the wire protocol and nothing else: it returns status
codes and decoded JSON bodies and raises ``RemoteTransportError`` when a
request could not be completed. Interpreting statuses (missing path, stale
token) is the client's job.

Two implementations:
- GitHubContentsTransport: GitHub REST contents API over aiohttp
- InMemoryContentsTransport: in-process fake with the same semantics,
  for tests and local development
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any
from urllib.parse import quote

import aiohttp

from ..config import StoreConfig
from ..exceptions import RemoteTransportError
from ..resilience import RetryConfig, retry_with_backoff
from .types import TransportResponse

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
USER_AGENT = "hostpanel-storage"


class ContentsTransport(ABC):
    """Abstract interface to a path-addressed contents API."""

    @abstractmethod
    async def get_contents(self, path: str) -> TransportResponse:
        """GET a file (``{content, sha, ...}``) or directory (list of entries)."""

    @abstractmethod
    async def get_raw_contents(self, path: str) -> bytes | None:
        """GET the raw bytes of a file too large for the JSON representation."""

    @abstractmethod
    async def put_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        """PUT ``{message, content, sha?}`` to create or update a file."""

    @abstractmethod
    async def delete_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        """DELETE a file with ``{message, sha}``."""

    @abstractmethod
    async def get_repository(self) -> TransportResponse:
        """GET the repository description (used as a connection probe)."""

    async def close(self) -> None:
        """Release network resources."""


# =============================================================================
# GitHub over aiohttp
# =============================================================================


class _RetryableStatus(Exception):
    """Internal signal that a response status is worth retrying."""

    def __init__(self, status_code: int, headers: Any = None):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.headers = headers


class GitHubContentsTransport(ContentsTransport):
    """GitHub REST contents API transport.

    Every request carries a bounded total timeout and transient failures
    (429, 5xx, dropped connections, timeouts) are retried with exponential
    backoff. After the last retry a ``RemoteTransportError`` is raised.

    Example:
        >>> transport = GitHubContentsTransport(StoreConfig.from_environment())
        >>> response = await transport.get_contents("database/users.json")
        >>> await transport.close()
    """

    def __init__(
        self,
        config: StoreConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Store configuration (credentials, repo, timeouts)
            session: Optional externally managed aiohttp session
        """
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._retry = RetryConfig(
            max_retries=config.max_retries,
            backoff_base=config.retry_delay,
            retryable_exceptions=(
                aiohttp.ClientConnectionError,
                aiohttp.ClientPayloadError,
                ConnectionError,
                TimeoutError,
            ),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.github_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.config.request_timeout)

    def _repo_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/repos/{self.config.repo_full_name}"

    def _contents_url(self, path: str) -> str:
        return f"{self._repo_url()}/contents/{quote(path.strip('/'))}"

    def _with_branch(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.config.branch:
            return {**payload, "branch": self.config.branch}
        return payload

    def _ref_params(self) -> dict[str, str] | None:
        if self.config.branch:
            return {"ref": self.config.branch}
        return None

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> TransportResponse:
        session = self._get_session()

        async def attempt() -> TransportResponse:
            async with session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=self._timeout(),
            ) as response:
                if response.status in self._retry.retryable_status_codes:
                    raise _RetryableStatus(response.status, response.headers)
                text = await response.text()
                body: Any = None
                if text:
                    try:
                        body = json.loads(text)
                    except ValueError:
                        body = text
                return TransportResponse(status=response.status, body=body)

        try:
            return await retry_with_backoff(
                attempt, config=self._retry, context_msg=f"{method} {path}"
            )
        except _RetryableStatus as e:
            raise RemoteTransportError(method.lower(), path, status=e.status_code) from e
        except (aiohttp.ClientError, TimeoutError, ConnectionError) as e:
            raise RemoteTransportError(method.lower(), path, cause=e) from e

    async def get_contents(self, path: str) -> TransportResponse:
        return await self._request(
            "GET", self._contents_url(path), path, params=self._ref_params()
        )

    async def get_raw_contents(self, path: str) -> bytes | None:
        session = self._get_session()
        headers = {**self._headers(), "Accept": "application/vnd.github.raw+json"}

        async def attempt() -> bytes | None:
            async with session.get(
                self._contents_url(path),
                params=self._ref_params(),
                headers=headers,
                timeout=self._timeout(),
            ) as response:
                if response.status in self._retry.retryable_status_codes:
                    raise _RetryableStatus(response.status, response.headers)
                if response.status != 200:
                    return None
                return await response.read()

        try:
            return await retry_with_backoff(attempt, config=self._retry, context_msg=f"RAW {path}")
        except _RetryableStatus as e:
            raise RemoteTransportError("get_raw", path, status=e.status_code) from e
        except (aiohttp.ClientError, TimeoutError, ConnectionError) as e:
            raise RemoteTransportError("get_raw", path, cause=e) from e

    async def put_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        return await self._request(
            "PUT", self._contents_url(path), path, payload=self._with_branch(payload)
        )

    async def delete_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        return await self._request(
            "DELETE", self._contents_url(path), path, payload=self._with_branch(payload)
        )

    async def get_repository(self) -> TransportResponse:
        return await self._request("GET", self._repo_url(), self.config.repo_full_name)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> GitHubContentsTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


# =============================================================================
# In-memory fake
# =============================================================================


def blob_sha(data: bytes) -> str:
    """Compute the git blob SHA-1 the contents API reports as ``sha``."""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


class InMemoryContentsTransport(ContentsTransport):
    """In-process stand-in for the contents API.

    Mirrors the semantics the client depends on:
    - 404 for missing paths, directory listings for path prefixes
    - ``sha`` tokens computed like git blob hashes
    - 422 when updating an existing file without a token
    - 409 when the presented token does not match the current version

    ``calls`` counts requests per method; ``fail_next`` injects failures.
    """

    def __init__(
        self,
        owner: str = "octo",
        repo: str = "storage",
        repository_available: bool = True,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.repository_available = repository_available
        self.files: dict[str, bytes] = {}
        self.calls: Counter[str] = Counter()
        self.commits: list[dict[str, Any]] = []
        self._failures: dict[str, list[int | None]] = {}

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def seed(self, path: str, content: Any) -> str:
        """Place a file directly, bypassing tokens. Returns its sha."""
        if isinstance(content, bytes):
            data = content
        elif isinstance(content, str):
            data = content.encode("utf-8")
        else:
            data = json.dumps(content, indent=2).encode("utf-8")
        self.files[path] = data
        return blob_sha(data)

    def text(self, path: str) -> str:
        """Return a stored file as text."""
        return self.files[path].decode("utf-8")

    def json(self, path: str) -> Any:
        """Return a stored file decoded as JSON."""
        return json.loads(self.files[path])

    def fail_next(self, method: str, status: int | None = None, times: int = 1) -> None:
        """Make the next ``times`` calls of ``method`` fail.

        Args:
            method: "get", "put" or "delete"
            status: HTTP status to answer with, or None for a transport error
            times: Number of consecutive failures
        """
        self._failures.setdefault(method, []).extend([status] * times)

    def _maybe_fail(self, method: str, path: str) -> TransportResponse | None:
        self.calls[method] += 1
        pending = self._failures.get(method)
        if not pending:
            return None
        status = pending.pop(0)
        if status is None:
            raise RemoteTransportError(method, path, cause=ConnectionError("injected failure"))
        return TransportResponse(status=status, body={"message": "injected failure"})

    def _download_url(self, path: str) -> str:
        return f"https://raw.example.test/{self.owner}/{self.repo}/{path}"

    def _listing(self, path: str) -> list[dict[str, Any]]:
        prefix = path.rstrip("/") + "/"
        entries: dict[str, dict[str, Any]] = {}
        for key, data in self.files.items():
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            name, _, remainder = rest.partition("/")
            if remainder:
                entries.setdefault(
                    name,
                    {"name": name, "path": prefix + name, "type": "dir", "size": 0,
                     "download_url": None, "sha": None},
                )
            else:
                entries[name] = {
                    "name": name,
                    "path": key,
                    "type": "file",
                    "size": len(data),
                    "download_url": self._download_url(key),
                    "sha": blob_sha(data),
                }
        return [entries[name] for name in sorted(entries)]

    # -------------------------------------------------------------------------
    # ContentsTransport
    # -------------------------------------------------------------------------

    async def get_contents(self, path: str) -> TransportResponse:
        failure = self._maybe_fail("get", path)
        if failure:
            return failure

        data = self.files.get(path)
        if data is not None:
            return TransportResponse(
                status=200,
                body={
                    "type": "file",
                    "encoding": "base64",
                    "name": path.rsplit("/", 1)[-1],
                    "path": path,
                    "size": len(data),
                    "sha": blob_sha(data),
                    "content": base64.encodebytes(data).decode("ascii"),
                    "download_url": self._download_url(path),
                },
            )

        listing = self._listing(path)
        if listing:
            return TransportResponse(status=200, body=listing)
        return TransportResponse(status=404, body={"message": "Not Found"})

    async def get_raw_contents(self, path: str) -> bytes | None:
        failure = self._maybe_fail("get", path)
        if failure:
            return None
        return self.files.get(path)

    async def put_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        failure = self._maybe_fail("put", path)
        if failure:
            return failure

        current = self.files.get(path)
        sha = payload.get("sha")
        if current is not None and not sha:
            return TransportResponse(
                status=422, body={"message": "Invalid request. \"sha\" wasn't supplied."}
            )
        if current is not None and sha != blob_sha(current):
            return TransportResponse(
                status=409, body={"message": f"{path} does not match {sha}"}
            )
        if current is None and sha:
            return TransportResponse(
                status=409, body={"message": f"{path} does not match {sha}"}
            )

        data = base64.b64decode(payload["content"])
        self.files[path] = data
        self.commits.append({"method": "put", "path": path, "message": payload.get("message")})
        return TransportResponse(
            status=200 if current is not None else 201,
            body={"content": {"path": path, "sha": blob_sha(data)}},
        )

    async def delete_contents(self, path: str, payload: dict[str, Any]) -> TransportResponse:
        failure = self._maybe_fail("delete", path)
        if failure:
            return failure

        current = self.files.get(path)
        if current is None:
            return TransportResponse(status=404, body={"message": "Not Found"})
        if payload.get("sha") != blob_sha(current):
            return TransportResponse(
                status=409, body={"message": f"{path} does not match {payload.get('sha')}"}
            )

        del self.files[path]
        self.commits.append(
            {"method": "delete", "path": path, "message": payload.get("message")}
        )
        return TransportResponse(status=200, body={"content": None})

    async def get_repository(self) -> TransportResponse:
        self.calls["repo"] += 1
        if not self.repository_available:
            return TransportResponse(status=404, body={"message": "Not Found"})
        return TransportResponse(
            status=200, body={"full_name": f"{self.owner}/{self.repo}", "private": True}
        )
