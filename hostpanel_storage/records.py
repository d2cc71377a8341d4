"""
Record types and pure transformations over collections.

Collections are plain JSON documents (lists of dicts, or a dict keyed by
plan tier). Nothing here performs I/O; the collection store decides when a
changed collection gets persisted.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class PlanTier(str, Enum):
    """Subscription level."""

    FREE = "free"
    PRO = "pro"
    VIP = "vip"


class Role(str, Enum):
    """Account role."""

    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class ProjectStatus(str, Enum):
    """Lifecycle status of a hosted project."""

    ACTIVE = "active"
    ARCHIVED = "archived"


# Roles exempt from plan expiry and project quotas
ELEVATED_ROLES = frozenset({Role.ADMIN.value, Role.SUPERADMIN.value})

UNLIMITED = -1

DEFAULT_PLANS: dict[str, Record] = {
    PlanTier.FREE.value: {"price": 0, "duration": 365, "storage": 100, "max_projects": 1},
    PlanTier.PRO.value: {"price": 10, "duration": 30, "storage": 512, "max_projects": 10},
    PlanTier.VIP.value: {"price": 25, "duration": 30, "storage": 2048, "max_projects": UNLIMITED},
}


def default_plans() -> dict[str, Record]:
    """Return a fresh copy of the built-in plan table."""
    return copy.deepcopy(DEFAULT_PLANS)


def is_elevated(user: Record) -> bool:
    """Return True for admin and superadmin accounts."""
    return user.get("role") in ELEVATED_ROLES


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the epoch, the unit used for ids and trial resets."""
    return int(moment.timestamp() * 1000)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp (``Z`` suffix allowed) or epoch millis.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, UTC)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def isoformat_z(moment: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    utc = moment.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


# =============================================================================
# Expiry sweep
# =============================================================================


def check_expiry(user: Record, now: datetime) -> tuple[Record, bool]:
    """Lazily expire a paid plan.

    A non-elevated user on a paid plan whose ``expiryDate`` has passed is
    moved back to the free plan with the expiry cleared. The input record is
    never modified.

    Args:
        user: User record
        now: Current time (timezone aware)

    Returns:
        (record, changed): a downgraded copy and True, or the same record
        and False
    """
    if is_elevated(user):
        return user, False
    if user.get("plan") == PlanTier.FREE.value or not user.get("expiryDate"):
        return user, False

    expiry = parse_timestamp(user["expiryDate"])
    if expiry is None:
        logger.warning(
            f"Ignoring unparseable expiryDate for {user.get('username')}: {user['expiryDate']!r}"
        )
        return user, False
    if now <= expiry:
        return user, False

    downgraded = dict(user)
    downgraded["plan"] = PlanTier.FREE.value
    downgraded["expiryDate"] = None
    return downgraded, True


# =============================================================================
# Collection helpers
# =============================================================================


def find_index(records: list[Record], match: Callable[[Record], bool]) -> int:
    """Return the index of the first matching record, or -1."""
    for index, record in enumerate(records):
        if match(record):
            return index
    return -1


def find_record(records: list[Record], match: Callable[[Record], bool]) -> Record | None:
    """Return the first matching record, or None."""
    index = find_index(records, match)
    return records[index] if index != -1 else None


def upsert_by_key(
    records: list[Record],
    match: Callable[[Record], bool],
    create: Callable[[], Record],
    update: Callable[[Record], None] | None = None,
) -> tuple[Record, bool]:
    """Update the first matching record in place, or append a new one.

    Args:
        records: Collection, modified in place
        match: Key predicate
        create: Factory for the record when none matches
        update: Applied to the matched or newly created record

    Returns:
        (record, created)
    """
    index = find_index(records, match)
    created = index == -1
    if created:
        records.append(create())
        index = len(records) - 1

    record = records[index]
    if update is not None:
        update(record)
    return record, created


def remove_where(records: list[Record], predicate: Callable[[Record], bool]) -> int:
    """Remove every matching record in place. Returns the number removed."""
    kept = [record for record in records if not predicate(record)]
    removed = len(records) - len(kept)
    records[:] = kept
    return removed


def project_key(name: str, owner: str) -> Callable[[Record], bool]:
    """Key predicate for a project record."""
    return lambda record: record.get("name") == name and record.get("owner") == owner


def username_key(username: str) -> Callable[[Record], bool]:
    """Key predicate for a user record."""
    return lambda record: record.get("username") == username
