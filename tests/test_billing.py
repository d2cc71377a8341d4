"""Tests for the billing service."""

from __future__ import annotations

import pytest

from hostpanel_storage import HostingPanel
from hostpanel_storage.exceptions import (
    PendingPaymentExistsError,
    UserNotFoundError,
    ValidationError,
)
from hostpanel_storage.records import PlanTier, default_plans
from hostpanel_storage.remote import (
    PAYMENTS_PATH,
    PLANS_PATH,
    USERS_PATH,
    InMemoryContentsTransport,
)
from hostpanel_storage.services.billing import tier_for_label


@pytest.fixture
async def ada(panel: HostingPanel) -> dict:
    return await panel.accounts.register("ada", "ada@example.com", "pw")


class TestPlans:
    """Tests for the plan table."""

    async def test_defaults_when_absent(self, panel: HostingPanel) -> None:
        assert await panel.billing.get_plans() == default_plans()

    async def test_update_plans(
        self, panel: HostingPanel, transport: InMemoryContentsTransport
    ) -> None:
        plans = {"free": {"price": 0, "duration": 365, "storage": 50, "max_projects": 3}}
        await panel.billing.update_plans(plans)

        assert transport.json(PLANS_PATH) == plans
        assert await panel.billing.get_plans() == plans

    async def test_update_plans_requires_mapping(self, panel: HostingPanel) -> None:
        with pytest.raises(ValidationError):
            await panel.billing.update_plans([1, 2])

    async def test_update_plans_coerces_form_values(
        self, panel: HostingPanel, transport: InMemoryContentsTransport
    ) -> None:
        """Limits posted as strings are stored as numbers."""
        plans = {"free": {"price": "0", "duration": "365", "storage": "100", "max_projects": "1"}}

        await panel.billing.update_plans(plans)

        assert transport.json(PLANS_PATH) == {
            "free": {"price": 0, "duration": 365, "storage": 100, "max_projects": 1}
        }

    @pytest.mark.parametrize(
        "limits",
        [{"max_projects": "many"}, {"duration": 1.5}, {"storage": True}, {"price": [1]}],
    )
    async def test_update_plans_rejects_bad_limits(
        self, panel: HostingPanel, transport: InMemoryContentsTransport, limits: dict
    ) -> None:
        with pytest.raises(ValidationError):
            await panel.billing.update_plans({"free": limits})
        assert transport.calls["put"] == 0

    async def test_update_plans_rejects_non_mapping_tier(self, panel: HostingPanel) -> None:
        with pytest.raises(ValidationError):
            await panel.billing.update_plans({"free": 3})

    @pytest.mark.parametrize(
        "label,tier",
        [("VIP Monthly", PlanTier.VIP), ("vip", PlanTier.VIP), ("Pro", PlanTier.PRO), ("", PlanTier.PRO)],
    )
    def test_tier_for_label(self, label: str, tier: PlanTier) -> None:
        assert tier_for_label(label) is tier


class TestPayments:
    """Tests for payment requests."""

    async def test_submit_once(
        self, panel: HostingPanel, transport: InMemoryContentsTransport, ada: dict
    ) -> None:
        request = await panel.billing.submit_payment("ada", "bkash", "017", "TRX1", 25, "VIP")

        assert request["trxId"] == "TRX1"
        assert request["date"] == "2025-03-01T12:00:00.000Z"
        assert transport.json(PAYMENTS_PATH) == [request]

        with pytest.raises(PendingPaymentExistsError):
            await panel.billing.submit_payment("ada", "bkash", "017", "TRX2", 25, "VIP")

    async def test_approve_grants_tier_for_plan_duration(
        self, panel: HostingPanel, transport: InMemoryContentsTransport, ada: dict
    ) -> None:
        request = await panel.billing.submit_payment(
            "ada", "bkash", "017", "TRX1", 25, "VIP Monthly"
        )

        days = await panel.billing.verify_payment(str(request["id"]), "approve", "ada", "VIP Monthly")

        assert days == 30
        user = transport.json(USERS_PATH)[0]
        assert user["plan"] == "vip"
        assert user["expiryDate"] == "2025-03-31T12:00:00.000Z"
        assert await panel.billing.pending_payments() == []

    async def test_approve_uses_configured_duration(
        self, panel: HostingPanel, transport: InMemoryContentsTransport, ada: dict
    ) -> None:
        plans = default_plans()
        plans["pro"]["duration"] = 7
        await panel.billing.update_plans(plans)
        request = await panel.billing.submit_payment("ada", "nagad", "018", "T", 10, "Pro")

        assert await panel.billing.verify_payment(request["id"], "approve", "ada", "Pro") == 7
        assert transport.json(USERS_PATH)[0]["expiryDate"] == "2025-03-08T12:00:00.000Z"

    async def test_reject(
        self, panel: HostingPanel, transport: InMemoryContentsTransport, ada: dict
    ) -> None:
        request = await panel.billing.submit_payment("ada", "bkash", "017", "TRX1", 25, "VIP")

        assert await panel.billing.verify_payment(request["id"], "reject", "ada", "VIP") is None
        assert transport.json(USERS_PATH)[0]["plan"] == "free"
        assert transport.json(PAYMENTS_PATH) == []

    async def test_unknown_action(self, panel: HostingPanel, ada: dict) -> None:
        with pytest.raises(ValidationError):
            await panel.billing.verify_payment(1, "maybe", "ada", "VIP")

    async def test_approve_unknown_user(self, panel: HostingPanel) -> None:
        with pytest.raises(UserNotFoundError):
            await panel.billing.verify_payment(1, "approve", "nobody", "VIP")


class TestPaymentMethods:
    """Tests for payment methods."""

    async def test_add_and_delete(self, panel: HostingPanel, wall_clock) -> None:
        methods = await panel.billing.add_payment_method("bkash", "017")
        wall_clock.advance(seconds=1)
        methods = await panel.billing.add_payment_method("nagad", "018")
        assert [m["provider"] for m in methods] == ["bkash", "nagad"]

        remaining = await panel.billing.delete_payment_method(str(methods[0]["id"]))

        assert [m["provider"] for m in remaining] == ["nagad"]
        assert await panel.billing.payment_methods() == remaining
