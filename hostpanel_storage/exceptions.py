"""
Custom exceptions for the hosting store.

The remote client never raises these to its callers; it logs and returns
``None``/``False``. Everything above the client (collection store and
services) raises them so callers can tell which operation did not happen.
"""


class HostingStoreError(Exception):
    """Base exception for all hosting store errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RemoteTransportError(HostingStoreError):
    """Raised when a request to the remote content API fails in transit."""

    def __init__(
        self,
        operation: str,
        path: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {"operation": operation}
        if path:
            details["path"] = path
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        message = f"Remote transport error during {operation}"
        if path:
            message += f": {path}"
        if status is not None:
            message += f" (HTTP {status})"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.status = status
        self.cause = cause


class StoreReadError(HostingStoreError):
    """Raised when a read needed for an operation could not be completed."""

    def __init__(self, path: str):
        super().__init__(f"Could not read {path}", {"path": path})
        self.path = path


class StoreWriteError(HostingStoreError):
    """Raised when a commit to the remote store did not happen."""

    def __init__(self, operation: str, path: str):
        super().__init__(
            f"Write did not happen during {operation}: {path}",
            {"operation": operation, "path": path},
        )
        self.operation = operation
        self.path = path


class ConflictError(HostingStoreError):
    """Raised when optimistic commits keep losing to concurrent writers."""

    def __init__(self, path: str, attempts: int):
        super().__init__(
            f"Concurrent update conflict on {path} after {attempts} attempt(s)",
            {"path": path, "attempts": attempts},
        )
        self.path = path
        self.attempts = attempts


class AuthenticationError(HostingStoreError):
    """Raised when credentials for the remote store are missing or rejected."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class ValidationError(HostingStoreError):
    """Raised when input or configuration validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


# =============================================================================
# Account errors
# =============================================================================


class UserExistsError(HostingStoreError):
    """Raised when registering a username or email that is already taken."""

    def __init__(self, username: str, email: str | None = None):
        details = {"username": username}
        if email:
            details["email"] = email
        super().__init__(f"User already exists: {username}", details)
        self.username = username
        self.email = email


class ReservedUsernameError(HostingStoreError):
    """Raised when registering the configured administrator name."""

    def __init__(self, username: str):
        super().__init__(f"Username is reserved: {username}", {"username": username})
        self.username = username


class UserNotFoundError(HostingStoreError):
    """Raised when a user is not found."""

    def __init__(self, username: str):
        super().__init__(f"User not found: {username}", {"username": username})
        self.username = username


class InvalidCredentialsError(HostingStoreError):
    """Raised when a username/password pair does not match."""

    def __init__(self, username: str):
        super().__init__(f"Invalid credentials for {username}", {"username": username})
        self.username = username


# =============================================================================
# Project errors
# =============================================================================


class ProjectNotFoundError(HostingStoreError):
    """Raised when a hosted project or file is not found."""

    def __init__(self, project: str, path: str | None = None):
        details = {"project": project}
        if path:
            details["path"] = path
        super().__init__(f"Project not found: {project}", details)
        self.project = project
        self.path = path


class ProjectLimitError(HostingStoreError):
    """Raised when a new project would exceed the plan's project quota."""

    def __init__(self, username: str, plan: str, max_projects: int):
        super().__init__(
            f"Project limit reached ({max_projects}) for {username} on plan {plan}",
            {"username": username, "plan": plan, "max_projects": max_projects},
        )
        self.username = username
        self.plan = plan
        self.max_projects = max_projects


class UploadTooLargeError(HostingStoreError):
    """Raised when an uploaded file exceeds the size limit."""

    def __init__(self, file_name: str, size_bytes: int, max_bytes: int):
        super().__init__(
            f"Upload {file_name} exceeds maximum size: {size_bytes} > {max_bytes} bytes",
            {"file_name": file_name, "size_bytes": size_bytes, "max_bytes": max_bytes},
        )
        self.file_name = file_name
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class BackupNotFoundError(HostingStoreError):
    """Raised when restoring a project whose backup file is missing."""

    def __init__(self, project: str, path: str):
        super().__init__(
            f"Backup not found for {project}: {path}", {"project": project, "path": path}
        )
        self.project = project
        self.path = path


# =============================================================================
# Billing errors
# =============================================================================


class PendingPaymentExistsError(HostingStoreError):
    """Raised when a user submits a payment while one is still pending."""

    def __init__(self, username: str):
        super().__init__(
            f"A payment request is already pending for {username}", {"username": username}
        )
        self.username = username
