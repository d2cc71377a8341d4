"""
Account service.

User records live in ``database/users.json`` as a list of dicts:

    {"id": 1714000000000, "username": "ada", "email": "ada@example.com",
     "password": "...", "plan": "free", "role": "user", "expiryDate": null,
     "trialSecondsRemaining": 3600, "trialLastReset": 1714000000000}

Every read of a single user runs the lazy expiry check, so callers always
see the effective plan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..config import StoreConfig
from ..exceptions import (
    HostingStoreError,
    InvalidCredentialsError,
    ReservedUsernameError,
    UserExistsError,
    UserNotFoundError,
    ValidationError,
)
from ..records import (
    PlanTier,
    Record,
    Role,
    check_expiry,
    epoch_millis,
    find_record,
    isoformat_z,
    remove_where,
    username_key,
)
from ..remote.types import USERS_PATH
from ..store import CollectionStore

logger = logging.getLogger(__name__)

TRIAL_WINDOW_MS = 24 * 60 * 60 * 1000
TRIAL_ALLOWANCE_SECONDS = 3600
DEFAULT_HEARTBEAT_SECONDS = 10

SUPERADMIN_PROFILE: Record = {
    "username": "Super Admin",
    "email": "admin@shamimcloud.com",
    "role": Role.ADMIN.value,
    "plan": PlanTier.VIP.value,
}

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class TrialStatus:
    """Editor trial allowance for a user."""

    unlimited: bool = False
    remaining: int = 0
    reset: bool = False


class AccountService:
    """Registration, login and plan management for panel users."""

    def __init__(self, store: CollectionStore, config: StoreConfig, clock: Clock = utc_now):
        self.store = store
        self.config = config
        self.clock = clock

    async def _users(self) -> list[Record]:
        return await self.store.load_collection(USERS_PATH, [])

    async def _update_user(
        self, username: str, change: Callable[[Record], bool | None], message: str
    ) -> Record:
        """Apply ``change`` to one user record with an optimistic commit.

        Raises:
            UserNotFoundError: If the user does not exist at commit time
        """
        updated: dict[str, Record] = {}

        def mutation(users: list[Record]) -> bool | None:
            user = find_record(users, username_key(username))
            if user is None:
                raise UserNotFoundError(username)
            result = change(user)
            updated["user"] = user
            return result

        await self.store.mutate(USERS_PATH, mutation, [], message)
        return updated["user"]

    async def _sweep(self, user: Record) -> Record:
        """Return the effective record, persisting a downgrade if one is due."""
        now = self.clock()
        swept, changed = check_expiry(user, now)
        if not changed:
            return swept

        username = user["username"]
        logger.info(f"Plan of {username} expired; downgrading to free")

        def downgrade(record: Record) -> bool:
            current, due = check_expiry(record, now)
            if not due:
                return False
            record.update(plan=current["plan"], expiryDate=current["expiryDate"])
            return True

        try:
            await self._update_user(username, downgrade, f"Auto Downgrade {username}")
        except HostingStoreError as e:
            # The downgrade is re-derived on every read, so a lost write only delays it
            logger.warning(f"Could not persist downgrade of {username}: {e}")
        return swept

    # =========================================================================
    # Registration and login
    # =========================================================================

    async def register(self, username: str, email: str, password: str) -> Record:
        """Create a free-plan account.

        Raises:
            ValidationError: If a field is empty
            ReservedUsernameError: If the name is the administrator's
            UserExistsError: If the username or email is taken
        """
        for field_name, value in (("username", username), ("email", email), ("password", password)):
            if not value:
                raise ValidationError(field_name, "must not be empty")

        admin = self.config.admin_user
        if admin and username.lower() == admin.lower():
            raise ReservedUsernameError(username)

        record: Record = {
            "id": epoch_millis(self.clock()),
            "username": username,
            "email": email,
            "password": password,
            "plan": PlanTier.FREE.value,
            "role": Role.USER.value,
            "expiryDate": None,
        }

        def add(users: list[Record]) -> None:
            taken = find_record(
                users, lambda u: u.get("username") == username or u.get("email") == email
            )
            if taken is not None:
                raise UserExistsError(username, email)
            users.append(record)

        await self.store.mutate(USERS_PATH, add, [], "Register")
        logger.info(f"Registered user {username}")
        return dict(record)

    async def login(self, username: str, password: str) -> Record:
        """Authenticate and return the effective user record.

        The configured administrator never touches storage.

        Raises:
            InvalidCredentialsError: If no account matches
        """
        if (
            self.config.admin_user
            and self.config.admin_pass
            and username == self.config.admin_user
            and password == self.config.admin_pass
        ):
            return dict(SUPERADMIN_PROFILE)

        users = await self._users()
        user = find_record(
            users, lambda u: u.get("username") == username and u.get("password") == password
        )
        if user is None:
            raise InvalidCredentialsError(username)
        return await self._sweep(user)

    async def get_user(self, username: str) -> Record:
        """Return the effective record of ``username``.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = find_record(await self._users(), username_key(username))
        if user is None:
            raise UserNotFoundError(username)
        return await self._sweep(user)

    async def delete_account(self, username: str, password: str) -> None:
        """Remove an account after checking its password.

        Hosted files of the user are left in place.

        Raises:
            UserNotFoundError: If the user does not exist
            InvalidCredentialsError: If the password does not match
        """

        def remove(users: list[Record]) -> None:
            user = find_record(users, username_key(username))
            if user is None:
                raise UserNotFoundError(username)
            if user.get("password") != password:
                raise InvalidCredentialsError(username)
            remove_where(users, username_key(username))

        await self.store.mutate(USERS_PATH, remove, [], f"Delete User {username}")
        logger.info(f"Deleted account {username}")

    async def list_users(self) -> list[Record]:
        return await self._users()

    # =========================================================================
    # Plans
    # =========================================================================

    async def admin_update_plan(
        self,
        target: str,
        new_plan: PlanTier | str,
        expiry_date: datetime | str | None = None,
    ) -> Record:
        """Set a user's plan by hand.

        Args:
            target: Username to change
            new_plan: Plan tier
            expiry_date: New expiry; ignored for ``free``, which clears it.
                When omitted for a paid plan the current expiry is kept.

        Raises:
            ValidationError: If ``new_plan`` is not a known tier
            UserNotFoundError: If the user does not exist
        """
        try:
            tier = PlanTier(new_plan)
        except ValueError:
            raise ValidationError("plan", "unknown plan tier", str(new_plan)) from None

        if isinstance(expiry_date, datetime):
            expiry_date = isoformat_z(expiry_date)

        def change(user: Record) -> None:
            user["plan"] = tier.value
            if tier is PlanTier.FREE:
                user["expiryDate"] = None
            elif expiry_date:
                user["expiryDate"] = expiry_date

        user = await self._update_user(target, change, f"Update {target}")
        logger.info(f"Plan of {target} set to {tier.value}")
        return user

    async def grant_plan(self, username: str, tier: PlanTier, expiry: datetime) -> Record:
        """Set a paid plan with an explicit expiry."""

        def change(user: Record) -> None:
            user["plan"] = tier.value
            user["expiryDate"] = isoformat_z(expiry)

        return await self._update_user(username, change, f"Approved {username}")

    # =========================================================================
    # Editor trial
    # =========================================================================

    async def trial_status(self, username: str) -> TrialStatus:
        """Return the editor allowance, starting a new daily window if due.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = await self.get_user(username)
        if user.get("plan") != PlanTier.FREE.value:
            return TrialStatus(unlimited=True)

        now_ms = epoch_millis(self.clock())
        if now_ms - (user.get("trialLastReset") or 0) <= TRIAL_WINDOW_MS:
            return TrialStatus(remaining=user.get("trialSecondsRemaining") or 0)

        def reset(record: Record) -> None:
            record["trialLastReset"] = now_ms
            record["trialSecondsRemaining"] = TRIAL_ALLOWANCE_SECONDS

        await self._update_user(username, reset, f"Reset Trial {username}")
        return TrialStatus(remaining=TRIAL_ALLOWANCE_SECONDS, reset=True)

    async def trial_heartbeat(
        self, username: str, deducted_seconds: int = DEFAULT_HEARTBEAT_SECONDS
    ) -> int | None:
        """Deduct editor time from a free user.

        Returns:
            Seconds remaining, or None for users on a paid plan
        """
        user = await self.get_user(username)
        if user.get("plan") != PlanTier.FREE.value:
            return None

        remaining: dict[str, Any] = {}

        def deduct(record: Record) -> bool | None:
            if record.get("plan") != PlanTier.FREE.value:
                return False
            value = max(0, (record.get("trialSecondsRemaining") or 0) - deducted_seconds)
            record["trialSecondsRemaining"] = value
            remaining["value"] = value
            return None

        await self._update_user(username, deduct, f"Heartbeat {username}")
        return remaining.get("value")
