from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from pymongo.errors import PyMongoError

from core.exceptions import InternalError
from provisioning import propagation
from provisioning.propagation import (
    cascade_tenant_status,
    landlord_fields_from_update,
    mirror_tenant_name,
    project_status,
    sync_landlord,
)
from provisioning.store import landlords, subscriptions
from schemas.landlord import LandlordStatus
from schemas.subscription import SubscriptionStatus
from schemas.tenant import TenantStatus


class TestProjection:
    @pytest.mark.parametrize("status,expected", [
        (SubscriptionStatus.ACTIVE, LandlordStatus.ACTIVE),
        (SubscriptionStatus.PENDING, LandlordStatus.SUSPENDED),
        (SubscriptionStatus.DEPLOYING, LandlordStatus.SUSPENDED),
        (SubscriptionStatus.FAILED, LandlordStatus.SUSPENDED),
        (SubscriptionStatus.SUSPENDED, LandlordStatus.SUSPENDED),
        (SubscriptionStatus.TERMINATED, LandlordStatus.SUSPENDED),
    ])
    def test_project_status(self, status, expected):
        assert project_status(status) == expected

    def test_only_present_fields_are_mapped(self):
        assert landlord_fields_from_update({"tenant_url": "a.io", "number_of_stores": 3}) == {
            "domain": "a.io",
            "outlets": 3,
        }

    def test_full_field_mapping(self):
        fields = landlord_fields_from_update({
            "package_id": 2,
            "tenant_url": "a.io",
            "tenant_api_url": "api.a.io",
            "domain_name": "https://a.com",
            "number_of_stores": 4,
            "status": SubscriptionStatus.FAILED,
            "subscription_type_id": 9,
        })
        assert fields == {
            "package_id": 2,
            "domain": "a.io",
            "api_url": "api.a.io",
            "url": "https://a.com",
            "outlets": 4,
            "status": LandlordStatus.SUSPENDED,
        }


class TestSyncLandlord:
    async def test_missing_row_is_rebuilt_in_full(self, db, make_tenant, make_subscription):
        tenant = await make_tenant(business_name="Corner Deli")
        sub, _ = await make_subscription(tenant, slug="deli")
        await landlords.delete(sub.subscription_id)

        landlord = await sync_landlord(sub, ["number_of_stores"])

        assert landlord.id == sub.subscription_id
        assert landlord.name == "Corner Deli"
        assert landlord.domain == "deli.platform.io"
        assert landlord.api_url == "api.deli.platform.io"
        assert landlord.url == "https://deli.example.com"
        assert landlord.status == LandlordStatus.ACTIVE

    async def test_partial_sync_touches_only_changed_fields(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant, slug="deli")
        # landlord drifted on a field we will not sync
        await landlords.update(sub.subscription_id, {"package_id": 99})
        changed = await subscriptions.update(sub.subscription_id, {"number_of_stores": 5})

        landlord = await sync_landlord(changed, ["number_of_stores"])

        assert landlord.outlets == 5
        assert landlord.package_id == 99

    async def test_missing_tenant_is_internal_error(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        await landlords.delete(sub.subscription_id)
        await db["tenants"].delete_one({"tenant_id": tenant.tenant_id})
        with pytest.raises(InternalError):
            await sync_landlord(sub)


class TestCascade:
    async def test_suspend_cascades_to_every_subscription(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        s1, _ = await make_subscription(tenant)
        s2, _ = await make_subscription(tenant)

        summary = await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)

        assert sorted(summary["applied"]) == sorted([s1.subscription_id, s2.subscription_id])
        for sub_id in (s1.subscription_id, s2.subscription_id):
            assert (await subscriptions.get(sub_id)).status == SubscriptionStatus.SUSPENDED
            assert (await landlords.get(sub_id)).status == LandlordStatus.SUSPENDED

    async def test_terminated_tenant_suspends_never_terminates(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        await cascade_tenant_status(tenant.tenant_id, TenantStatus.TERMINATED)
        assert (await subscriptions.get(sub.subscription_id)).status == SubscriptionStatus.SUSPENDED

    @pytest.mark.parametrize("status", [TenantStatus.ACTIVE, TenantStatus.PENDING])
    async def test_non_cascading_status_is_noop(self, db, make_tenant, make_subscription, status):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        summary = await cascade_tenant_status(tenant.tenant_id, status)
        assert summary["cascaded"] is False
        assert (await subscriptions.get(sub.subscription_id)).status == SubscriptionStatus.ACTIVE

    async def test_cascade_is_idempotent(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)
        first = await landlords.get(sub.subscription_id)

        await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)

        second = await landlords.get(sub.subscription_id)
        assert (await subscriptions.get(sub.subscription_id)).status == SubscriptionStatus.SUSPENDED
        assert second.model_dump(exclude={"updated_at", "last_synced_at"}) == \
            first.model_dump(exclude={"updated_at", "last_synced_at"})

    async def test_rerun_repairs_partial_cascade(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        # previous attempt suspended the subscription but crashed before the landlord write
        await subscriptions.update(sub.subscription_id, {"status": SubscriptionStatus.SUSPENDED})
        assert (await landlords.get(sub.subscription_id)).status == LandlordStatus.ACTIVE

        await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)

        assert (await landlords.get(sub.subscription_id)).status == LandlordStatus.SUSPENDED

    async def test_failing_step_does_not_stop_the_rest(self, db, make_tenant, make_subscription, monkeypatch):
        tenant = await make_tenant()
        s1, _ = await make_subscription(tenant)
        s2, _ = await make_subscription(tenant)
        real_sync = propagation.sync_landlord

        async def flaky_sync(subscription, changed_fields=None):
            if subscription.subscription_id == s1.subscription_id:
                raise InternalError("landlord write failed")
            return await real_sync(subscription, changed_fields)

        monkeypatch.setattr(propagation, "sync_landlord", flaky_sync)

        with pytest.raises(InternalError) as exc:
            await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)

        failures = exc.value.details["failures"]
        assert [f["subscription_id"] for f in failures] == [s1.subscription_id]
        assert exc.value.details["applied"] == [s2.subscription_id]
        assert (await landlords.get(s2.subscription_id)).status == LandlordStatus.SUSPENDED
        # applied steps are not rolled back
        assert (await subscriptions.get(s1.subscription_id)).status == SubscriptionStatus.SUSPENDED
        assert await db["audit_events"].count_documents({"event_type": "cascade_step_failed"}) == 1

    async def test_journal_outage_does_not_lose_the_summary(
        self, db, make_tenant, make_subscription, monkeypatch,
    ):
        tenant = await make_tenant()
        s1, _ = await make_subscription(tenant)
        s2, _ = await make_subscription(tenant)
        real_sync = propagation.sync_landlord

        async def flaky_sync(subscription, changed_fields=None):
            if subscription.subscription_id == s1.subscription_id:
                raise InternalError("landlord write failed")
            return await real_sync(subscription, changed_fields)

        async def audit_down(event_type, **kwargs):
            raise PyMongoError("audit store unavailable")

        monkeypatch.setattr(propagation, "sync_landlord", flaky_sync)
        monkeypatch.setattr(propagation, "log_audit_event", audit_down)

        with pytest.raises(InternalError) as exc:
            await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)

        assert [f["subscription_id"] for f in exc.value.details["failures"]] == [s1.subscription_id]
        assert exc.value.details["applied"] == [s2.subscription_id]
        assert (await landlords.get(s2.subscription_id)).status == LandlordStatus.SUSPENDED

    async def test_cascade_steps_are_journalled(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        sub, _ = await make_subscription(tenant)
        await cascade_tenant_status(tenant.tenant_id, TenantStatus.SUSPENDED)
        event = await db["audit_events"].find_one({"event_type": "cascade_step_applied"})
        assert event["entity_id"] == sub.subscription_id
        assert event["details"]["to"] == "Suspended"


class TestMirrorTenantName:
    async def test_name_rewritten_on_all_landlords(self, db, make_tenant, make_subscription):
        tenant = await make_tenant()
        s1, _ = await make_subscription(tenant)
        s2, _ = await make_subscription(tenant)
        updated = await mirror_tenant_name(tenant.tenant_id, "Renamed Ltd")
        assert sorted(updated) == sorted([s1.subscription_id, s2.subscription_id])
        for sub_id in updated:
            assert (await landlords.get(sub_id)).name == "Renamed Ltd"
