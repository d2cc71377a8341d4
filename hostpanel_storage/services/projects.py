"""
Project service.

Hosted projects live under ``hosting/<project>/`` in the storage repository
and are served by GitHub Pages. Their metadata (owner, status, creation
time) is kept in ``database/projects.json``.

All file writes go through ``HostedFileWriter`` so the watermark policy is
applied with the owner's effective plan.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import StoreConfig
from ..exceptions import (
    BackupNotFoundError,
    ProjectLimitError,
    ProjectNotFoundError,
    StoreReadError,
    StoreWriteError,
    UploadTooLargeError,
    ValidationError,
)
from ..records import (
    UNLIMITED,
    PlanTier,
    ProjectStatus,
    Record,
    default_plans,
    find_record,
    is_elevated,
    isoformat_z,
    project_key,
    remove_where,
    upsert_by_key,
)
from ..remote.client import ContentStoreClient
from ..remote.types import (
    HOSTING_ROOT,
    NOT_FOUND,
    PROJECTS_PATH,
    DirectoryEntry,
    hosting_path,
)
from ..store import CollectionStore
from ..watermark import ENTRY_FILE_NAME
from .accounts import AccountService, Clock, utc_now
from .billing import BillingService, plan_limit
from .files import HostedFileWriter
from .pages import ARCHIVED_MARKER_TEXT, archived_page, maintenance_page

logger = logging.getLogger(__name__)

MAINTENANCE_BACKUP = "index_bak.html"
ARCHIVE_BACKUP = "index_old_backup.html"
ARCHIVE_MARKER = "archived.html"

LEGACY_EDITOR_ROOT = "sites"


class ProjectAction:
    MAINTENANCE_ON = "maintenance_on"
    MAINTENANCE_OFF = "maintenance_off"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"

    ALL = (MAINTENANCE_ON, MAINTENANCE_OFF, ARCHIVE, UNARCHIVE)


@dataclass
class ProjectDetails:
    """Top-level files of a project and their combined size."""

    files: list[DirectoryEntry]
    total_size: int


@dataclass
class DeleteReport:
    """Outcome of a non-transactional project delete."""

    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def validate_project_name(project: str) -> None:
    if not project or "/" in project or project in (".", ".."):
        raise ValidationError("project", "must be a single path segment", project)


def validate_file_name(file_name: str) -> None:
    parts = file_name.split("/") if file_name else []
    if not parts or file_name.startswith("/") or any(p in ("", ".", "..") for p in parts):
        raise ValidationError("file_name", "must be a relative path inside the project", file_name)


def resolve_editor_path(path: str) -> str:
    """Map an editor path to its location in the storage repository.

    ``sites/<user>/<project>/<file>`` is the path format older editor
    clients send; it maps to ``hosting/<project>/<file>``. Anything else is
    returned unchanged.
    """
    parts = path.strip("/").split("/")
    if parts[0] == LEGACY_EDITOR_ROOT and len(parts) >= 4:
        return hosting_path(parts[2], "/".join(parts[3:]))
    return path


def _as_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return json.dumps(content, indent=2, ensure_ascii=False)


class ProjectService:
    """Deploy, inspect, edit and manage hosted projects."""

    def __init__(
        self,
        store: CollectionStore,
        accounts: AccountService,
        billing: BillingService,
        files: HostedFileWriter,
        config: StoreConfig,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.client: ContentStoreClient = store.client
        self.accounts = accounts
        self.billing = billing
        self.files = files
        self.config = config
        self.clock = clock

    def project_url(self, project: str, file_name: str = ENTRY_FILE_NAME) -> str:
        """Public Pages URL of a hosted file."""
        return f"{self.config.pages_base_url}/{hosting_path(project, file_name)}"

    async def _owner_tier(self, username: str) -> str:
        user = await self.accounts.get_user(username)
        return user.get("plan") or PlanTier.FREE.value

    async def _write(
        self, project: str, file_name: str, content: Any, tier: str, message: str
    ) -> None:
        if not await self.files.write(project, file_name, content, tier, message):
            raise StoreWriteError(message, hosting_path(project, file_name))

    async def _delete(self, project: str, file_name: str, message: str) -> None:
        path = hosting_path(project, file_name)
        if not await self.client.delete(path, message):
            raise StoreWriteError(message, path)

    async def _read_optional(self, project: str, file_name: str) -> bytes | None:
        """Return a file's bytes, or None if it does not exist.

        Raises:
            StoreReadError: If the read failed
        """
        path = hosting_path(project, file_name)
        remote = await self.client.fetch_object(path)
        if remote is None:
            raise StoreReadError(path)
        if remote is NOT_FOUND:
            return None
        return remote.content

    # =========================================================================
    # Deploy and listing
    # =========================================================================

    async def _check_project_limit(self, user: Record, project: str) -> None:
        if is_elevated(user):
            return

        username = user["username"]
        plans = await self.billing.get_plans()
        plan = user.get("plan") or PlanTier.FREE.value
        limits = plans.get(plan) or plans.get(PlanTier.FREE.value) or {}
        builtin = default_plans().get(plan) or default_plans()[PlanTier.FREE.value]
        max_projects = plan_limit(limits, "max_projects", UNLIMITED, builtin["max_projects"])
        if max_projects == UNLIMITED:
            return

        projects = await self.store.load_collection(PROJECTS_PATH, [])
        owned = [p for p in projects if p.get("owner") == username]
        if any(p.get("name") == project for p in owned):
            return
        if len(owned) >= max_projects:
            raise ProjectLimitError(username, plan, max_projects)

    async def deploy(self, username: str, project: str, file_name: str, data: bytes) -> str:
        """Upload one file of a project and register the project if new.

        Args:
            username: Owner
            project: Project name
            file_name: Path of the file inside the project
            data: File content

        Returns:
            Public URL of the uploaded file

        Raises:
            ValidationError: If the project or file name is malformed
            UserNotFoundError: If the owner does not exist
            UploadTooLargeError: If ``data`` exceeds the upload limit
            ProjectLimitError: If a new project would exceed the plan quota
            StoreWriteError: If the upload did not happen
        """
        validate_project_name(project)
        validate_file_name(file_name)

        user = await self.accounts.get_user(username)
        if len(data) > self.config.max_upload_bytes:
            raise UploadTooLargeError(file_name, len(data), self.config.max_upload_bytes)
        await self._check_project_limit(user, project)

        tier = user.get("plan") or PlanTier.FREE.value
        await self._write(project, file_name, data, tier, f"Deploy {project}/{file_name}")

        def register(projects: list[Record]) -> bool:
            _, created = upsert_by_key(
                projects,
                project_key(project, username),
                lambda: {
                    "name": project,
                    "owner": username,
                    "status": ProjectStatus.ACTIVE.value,
                    "created": isoformat_z(self.clock()),
                },
            )
            return created

        await self.store.mutate(PROJECTS_PATH, register, [], f"Init Project {project}")
        logger.info(f"Deployed {file_name} to {project} for {username}")
        return self.project_url(project, file_name)

    async def list_projects(self, username: str) -> list[Record]:
        projects = await self.store.load_collection(PROJECTS_PATH, [])
        return [
            {
                "name": p.get("name"),
                "url": self.project_url(p.get("name", "")),
                "status": p.get("status"),
                "lastUpdated": p.get("created"),
            }
            for p in projects
            if p.get("owner") == username
        ]

    async def project_details(self, project: str) -> ProjectDetails:
        """List the top level of a project.

        Raises:
            ProjectNotFoundError: If the project directory does not exist
            StoreReadError: If the listing failed
        """
        path = hosting_path(project)
        entries = await self.client.list_directory(path)
        if entries is NOT_FOUND:
            raise ProjectNotFoundError(project, path)
        if entries is None:
            raise StoreReadError(path)
        return ProjectDetails(files=entries, total_size=sum(e.size for e in entries))

    # =========================================================================
    # Editor
    # =========================================================================

    async def read_file(self, path: str) -> str:
        """Return a hosted file as editor text.

        Structured content is re-serialised as indented JSON.

        Raises:
            ProjectNotFoundError: If the file does not exist
            StoreReadError: If the read failed
        """
        real_path = resolve_editor_path(path)
        content = await self.client.fetch(real_path)
        if content is None:
            raise StoreReadError(real_path)
        if content is NOT_FOUND or isinstance(content, list):
            project = real_path.split("/")[1] if real_path.startswith(f"{HOSTING_ROOT}/") else ""
            raise ProjectNotFoundError(project, real_path)
        return _as_text(content)

    async def edit_file(self, username: str, project: str, file_name: str, content: str) -> None:
        """Save editor content using the owner's current plan."""
        validate_project_name(project)
        validate_file_name(file_name)
        tier = await self._owner_tier(username)
        await self._write(project, file_name, content, tier, "Edit File")

    async def edit_file_at(self, path: str, content: str) -> None:
        """Save editor content addressed by ``sites/<user>/<project>/<file>``."""
        parts = path.strip("/").split("/")
        if parts[0] != LEGACY_EDITOR_ROOT or len(parts) < 4:
            raise ValidationError("path", "expected sites/<user>/<project>/<file>", path)
        await self.edit_file(parts[1], parts[2], "/".join(parts[3:]), content)

    # =========================================================================
    # Maintenance and archive
    # =========================================================================

    async def project_action(self, username: str, project: str, action: str) -> None:
        """Switch a project in or out of maintenance or archive mode.

        Args:
            username: Owner
            project: Project name
            action: One of ``maintenance_on``, ``maintenance_off``,
                ``archive``, ``unarchive``

        Raises:
            ValidationError: If ``action`` is unknown
            BackupNotFoundError: If unarchiving without a backup
            StoreReadError: If the entry page could not be read
            StoreWriteError: If a write did not happen
        """
        if action not in ProjectAction.ALL:
            raise ValidationError("action", f"must be one of {', '.join(ProjectAction.ALL)}", action)
        validate_project_name(project)
        tier = await self._owner_tier(username)

        if action == ProjectAction.MAINTENANCE_ON:
            await self._backup_entry(project, MAINTENANCE_BACKUP, tier, "Backup Index")
            await self._write(
                project, ENTRY_FILE_NAME, maintenance_page(project), tier, "Maintenance ON"
            )

        elif action == ProjectAction.MAINTENANCE_OFF:
            backup = await self._read_optional(project, MAINTENANCE_BACKUP)
            if backup is not None:
                await self._write(project, ENTRY_FILE_NAME, backup, tier, "Maintenance OFF")
                await self._delete(project, MAINTENANCE_BACKUP, "Del Backup")

        elif action == ProjectAction.ARCHIVE:
            await self._backup_entry(project, ARCHIVE_BACKUP, tier, "Backup for Archive")
            await self._write(
                project,
                ENTRY_FILE_NAME,
                archived_page(self.config.brand_name),
                tier,
                "project_archived",
            )
            await self._write(project, ARCHIVE_MARKER, ARCHIVED_MARKER_TEXT, tier, "Archive Marker")

        else:
            backup = await self._read_optional(project, ARCHIVE_BACKUP)
            if backup is None:
                raise BackupNotFoundError(project, hosting_path(project, ARCHIVE_BACKUP))
            await self._write(project, ENTRY_FILE_NAME, backup, tier, "Restore Project")
            await self._delete(project, ARCHIVE_BACKUP, "Cleanup Backup")
            await self._delete(project, ARCHIVE_MARKER, "Cleanup Marker")

        await self._sync_status(username, project, action)
        logger.info(f"Project {project} of {username}: {action}")

    async def _backup_entry(
        self, project: str, backup_name: str, tier: str, message: str
    ) -> None:
        # An existing backup already holds the real page; the entry is a placeholder now
        if await self._read_optional(project, backup_name) is not None:
            logger.info(f"Keeping existing {backup_name} of {project}")
            return
        current = await self._read_optional(project, ENTRY_FILE_NAME)
        if current is not None:
            await self._write(project, backup_name, current, tier, message)

    async def _sync_status(self, username: str, project: str, action: str) -> None:
        def update(record: Record) -> None:
            if action == ProjectAction.ARCHIVE:
                record["status"] = ProjectStatus.ARCHIVED.value
            elif action == ProjectAction.UNARCHIVE:
                record["status"] = ProjectStatus.ACTIVE.value

        def sync(projects: list[Record]) -> bool:
            before = find_record(projects, project_key(project, username))
            before = dict(before) if before is not None else None
            record, created = upsert_by_key(
                projects,
                project_key(project, username),
                lambda: {
                    "name": project,
                    "owner": username,
                    "status": ProjectStatus.ACTIVE.value,
                    "created": isoformat_z(self.clock()),
                },
                update,
            )
            return created or record != before

        await self.store.mutate(PROJECTS_PATH, sync, [], f"Update Project {project}")

    # =========================================================================
    # Delete
    # =========================================================================

    async def _delete_tree(self, path: str, report: DeleteReport) -> None:
        entries = await self.client.list_directory(path)
        if entries is NOT_FOUND:
            return
        if entries is None:
            logger.error(f"Could not list {path}; its files were not deleted")
            report.failed.append(path)
            return

        for entry in entries:
            if entry.is_file:
                if await self.client.delete(entry.path, "Delete Project"):
                    report.deleted.append(entry.path)
                else:
                    report.failed.append(entry.path)
            else:
                await self._delete_tree(entry.path, report)

    async def delete_project(self, project: str, owner: str | None = None) -> DeleteReport:
        """Delete every file of a project, one commit per file.

        Not transactional: a partial failure leaves the remaining files in
        place and lists them in ``DeleteReport.failed``.

        Args:
            project: Project name
            owner: When given, the project record of this owner is removed
                as well (only if every file was deleted)

        Returns:
            DeleteReport of deleted and failed paths
        """
        validate_project_name(project)
        report = DeleteReport()
        await self._delete_tree(hosting_path(project), report)

        if report.failed:
            logger.warning(
                f"Project {project} partially deleted: "
                f"{len(report.deleted)} deleted, {len(report.failed)} failed"
            )
        elif owner is not None:
            await self.store.mutate(
                PROJECTS_PATH,
                lambda projects: remove_where(projects, project_key(project, owner)) > 0,
                [],
                f"Delete Project {project}",
            )
        logger.info(f"Deleted project {project} ({len(report.deleted)} files)")
        return report
