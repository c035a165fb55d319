from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from datetime import timedelta

import pytest

from core.exceptions import ConflictError, ValidationError
from provisioning import uniqueness
from provisioning.store import subscriptions
from schemas.base import utcnow


async def _reservations(db):
    return await db["reservations"].find({}).to_list(None)


class TestIsUnique:
    async def test_unknown_attribute_rejected(self, db):
        with pytest.raises(ValidationError):
            await uniqueness.is_unique("email", "x@example.com")

    async def test_value_held_by_other_subscription(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant, slug="shop")
        assert await uniqueness.is_unique("domain_name", "https://shop.example.com") is False
        assert await uniqueness.is_unique("domain_name", "https://other.example.com") is True

    async def test_excluded_record_does_not_collide_with_itself(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant, slug="shop")
        assert await uniqueness.is_unique(
            "tenant_url", "shop.platform.io", exclude_id=sub.subscription_id,
        ) is True

    async def test_comparison_uses_normalized_value(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        await make_subscription(tenant, slug="shop")
        assert await uniqueness.is_unique("tenant_api_url", "  API.Shop.Platform.IO ") is False


class TestEnsureUnique:
    async def test_fail_fast_in_fixed_order(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        await make_subscription(tenant, slug="shop")
        with pytest.raises(ConflictError) as exc:
            await uniqueness.ensure_unique({
                "tenant_api_url": "api.shop.platform.io",
                "tenant_url": "shop.platform.io",
                "domain_name": "https://fresh.example.com",
            })
        assert exc.value.details["attribute"] == "tenant_url"
        assert exc.value.conflicts == ["shop.platform.io"]

    async def test_absent_values_are_skipped(self, db):
        await uniqueness.ensure_unique({"domain_name": None})


class TestReservations:
    async def test_reserve_writes_single_key_record(self, db):
        assert await uniqueness.reserve("domain_name", "https://A.example.com", "sub-1") is True
        [row] = await _reservations(db)
        assert row["_id"] == "domain_name:https://a.example.com"
        assert row["owner_id"] == "sub-1"

    async def test_second_claimant_conflicts(self, db):
        await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-1")
        with pytest.raises(ConflictError) as exc:
            await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-2")
        assert exc.value.details["reserved"] is True

    async def test_owner_can_reclaim_its_own_value(self, db):
        await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-1")
        assert await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-1") is True

    async def test_release_only_by_owner(self, db):
        await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-1")
        await uniqueness.release("tenant_url", "shop.platform.io", "sub-2")
        assert len(await _reservations(db)) == 1
        await uniqueness.release("tenant_url", "shop.platform.io", "sub-1")
        assert await _reservations(db) == []

    async def test_reserve_all_is_all_or_nothing(self, db):
        await uniqueness.reserve("tenant_api_url", "api.shop.platform.io", "sub-1")
        with pytest.raises(ConflictError):
            await uniqueness.reserve_all({
                "domain_name": "https://shop.example.com",
                "tenant_url": "shop.platform.io",
                "tenant_api_url": "api.shop.platform.io",
            }, "sub-2")
        rows = await _reservations(db)
        assert [r["owner_id"] for r in rows] == ["sub-1"]

    async def test_stale_reservation_is_reclaimed(self, db):
        await db["reservations"].insert_one({
            "_id": "tenant_url:shop.platform.io",
            "attribute": "tenant_url",
            "value": "shop.platform.io",
            "owner_id": "crashed-create",
            "reserved_at": utcnow() - timedelta(hours=1),
        })
        assert await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-2") is True
        row = await db["reservations"].find_one({"_id": "tenant_url:shop.platform.io"})
        assert row["owner_id"] == "sub-2"
        assert await db["audit_events"].count_documents({"event_type": "reservation_reclaimed"}) == 1

    async def test_recent_reservation_is_not_reclaimed(self, db):
        await uniqueness.reserve("tenant_url", "shop.platform.io", "in-flight")
        with pytest.raises(ConflictError):
            await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-2")

    async def test_old_reservation_held_by_live_owner_is_kept(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant, slug="shop")
        await db["reservations"].update_one(
            {"_id": "tenant_url:shop.platform.io"},
            {"$set": {"reserved_at": utcnow() - timedelta(hours=1)}},
        )
        with pytest.raises(ConflictError):
            await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-2")
        assert (await subscriptions.get(sub.subscription_id)).tenant_url == "shop.platform.io"

    async def test_disabled_reservations_write_nothing(self, db, monkeypatch):
        monkeypatch.setenv("UNIQUENESS_RESERVATIONS_ENABLED", "false")
        from config.settings import get_settings
        get_settings.cache_clear()
        assert await uniqueness.reserve("tenant_url", "shop.platform.io", "sub-1") is False
        assert await _reservations(db) == []
