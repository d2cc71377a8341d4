"""
Billing service: plan table, manual payment requests and payment methods.

Payment requests are verified by hand by an administrator; approving one
grants the paid tier for the duration configured in the plan table.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any

from ..exceptions import PendingPaymentExistsError, StoreWriteError, ValidationError
from ..records import PlanTier, Record, default_plans, epoch_millis, isoformat_z, remove_where
from ..remote.types import PAYMENTS_PATH, PLANS_PATH, SETTINGS_PATH
from ..store import CollectionStore
from .accounts import AccountService, Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PLAN_DURATION_DAYS = 30

APPROVE = "approve"
REJECT = "reject"

PLAN_LIMIT_FIELDS = ("price", "duration", "storage", "max_projects")


def _as_number(tier: str, key: str, value: Any) -> int | float:
    field_name = f"plans.{tier}.{key}"
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number", str(value))
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(field_name, "must be a number", value) from None
    else:
        raise ValidationError(field_name, "must be a number", str(value))
    if isinstance(number, float) and not math.isfinite(number):
        raise ValidationError(field_name, "must be finite", str(value))

    if key == "price":
        return int(number) if float(number).is_integer() else number
    if not float(number).is_integer():
        raise ValidationError(field_name, "must be a whole number", str(value))
    return int(number)


def normalize_plans(plans: Any) -> dict[str, Record]:
    """Validate a plan table and coerce its limits to numbers.

    Form posts deliver limits as strings (``"max_projects": "1"``); they are
    stored as numbers so quota checks can compare them.

    Raises:
        ValidationError: If the table or a limit is malformed
    """
    if not isinstance(plans, dict):
        raise ValidationError("plans", "must be a mapping of tier to limits")

    normalized: dict[str, Record] = {}
    for tier, limits in plans.items():
        if not isinstance(limits, dict):
            raise ValidationError(f"plans.{tier}", "must be a mapping of limits")
        entry = dict(limits)
        for key in PLAN_LIMIT_FIELDS:
            if entry.get(key) is not None:
                entry[key] = _as_number(tier, key, entry[key])
        normalized[tier] = entry
    return normalized


def plan_limit(limits: Record, key: str, default: int, fallback: int | None = None) -> int:
    """Read an integer limit from a stored plan.

    A missing limit gives ``default``; one that is not a number gives
    ``fallback`` (``default`` when not set).
    """
    value = limits.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        replacement = default if fallback is None else fallback
        logger.warning(f"Ignoring malformed plan limit {key}={value!r}; using {replacement}")
        return replacement


def tier_for_label(label: str) -> PlanTier:
    """Map a free-text plan label from a payment request to a paid tier."""
    return PlanTier.VIP if "vip" in (label or "").lower() else PlanTier.PRO


class BillingService:
    """Plans, payment requests and the payment methods shown to users."""

    def __init__(self, store: CollectionStore, accounts: AccountService, clock: Clock = utc_now):
        self.store = store
        self.accounts = accounts
        self.clock = clock

    # =========================================================================
    # Plans
    # =========================================================================

    async def get_plans(self) -> dict[str, Record]:
        """Return the plan table, or the built-in defaults when none is stored."""
        return await self.store.load_collection(PLANS_PATH, default_plans())

    async def update_plans(self, plans: dict[str, Record]) -> None:
        """Replace the plan table.

        Raises:
            ValidationError: If ``plans`` is not a mapping or a limit is not a number
            StoreWriteError: If the write did not happen
        """
        plans = normalize_plans(plans)
        if not await self.store.save_collection(PLANS_PATH, plans, "Update Plans"):
            raise StoreWriteError("update_plans", PLANS_PATH)
        logger.info(f"Plan table updated: {sorted(plans)}")

    # =========================================================================
    # Payment requests
    # =========================================================================

    async def submit_payment(
        self,
        username: str,
        method: str,
        number: str,
        trx_id: str,
        amount: Any,
        plan: str,
    ) -> Record:
        """Queue a payment request for verification.

        Raises:
            PendingPaymentExistsError: If the user already has one pending
        """
        now = self.clock()
        request: Record = {
            "id": epoch_millis(now),
            "username": username,
            "method": method,
            "number": number,
            "trxId": trx_id,
            "amount": amount,
            "plan": plan,
            "date": isoformat_z(now),
        }

        def add(payments: list[Record]) -> None:
            if any(p.get("username") == username for p in payments):
                raise PendingPaymentExistsError(username)
            payments.append(request)

        await self.store.mutate(PAYMENTS_PATH, add, [], "New Payment Req")
        logger.info(f"Payment request {request['id']} submitted by {username}")
        return dict(request)

    async def pending_payments(self) -> list[Record]:
        return await self.store.load_collection(PAYMENTS_PATH, [])

    async def verify_payment(
        self, payment_id: int | str, action: str, username: str, plan: str
    ) -> int | None:
        """Resolve a payment request.

        The request is removed either way. On approval the user gets
        ``vip`` if the plan label mentions it (``pro`` otherwise) until now
        plus the tier's configured duration.

        Args:
            payment_id: Id of the request
            action: ``approve`` or ``reject``
            username: User the request belongs to
            plan: Plan label from the request

        Returns:
            Days granted, or None when rejected

        Raises:
            ValidationError: If ``action`` is unknown
            UserNotFoundError: If approving for a user that does not exist
        """
        if action not in (APPROVE, REJECT):
            raise ValidationError("action", "must be approve or reject", action)

        await self.store.mutate(
            PAYMENTS_PATH,
            lambda payments: remove_where(payments, lambda p: str(p.get("id")) == str(payment_id))
            > 0,
            [],
            "Process Pay",
        )

        if action == REJECT:
            logger.info(f"Payment {payment_id} of {username} rejected")
            return None

        tier = tier_for_label(plan)
        plans = await self.get_plans()
        limits = plans.get(tier.value) or {}
        days = plan_limit(limits, "duration", DEFAULT_PLAN_DURATION_DAYS)
        days = days or DEFAULT_PLAN_DURATION_DAYS
        await self.accounts.grant_plan(username, tier, self.clock() + timedelta(days=days))
        logger.info(f"Payment {payment_id} approved: {username} on {tier.value} for {days} days")
        return days

    # =========================================================================
    # Payment methods
    # =========================================================================

    async def payment_methods(self) -> list[Record]:
        return await self.store.load_collection(SETTINGS_PATH, [])

    async def add_payment_method(self, provider: str, number: str) -> list[Record]:
        """Add a payment method and return the updated list."""
        method = {"id": epoch_millis(self.clock()), "provider": provider, "number": number}
        return await self.store.mutate(
            SETTINGS_PATH, lambda methods: methods.append(method), [], "Add Pay"
        )

    async def delete_payment_method(self, method_id: int | str) -> list[Record]:
        """Remove a payment method and return the updated list."""
        return await self.store.mutate(
            SETTINGS_PATH,
            lambda methods: remove_where(methods, lambda m: str(m.get("id")) == str(method_id)) > 0,
            [],
            "Del Pay",
        )
