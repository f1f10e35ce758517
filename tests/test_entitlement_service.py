"""
Tests for listing entitlement decisions
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from marketplace.core.exceptions import ProtectedResourceError
from marketplace.models.listing import ListingType
from marketplace.models.listing_usage import ListingUsage
from marketplace.models.subscription_plan import SubscriptionPlan
from marketplace.services.entitlement_service import (Allowed, AllowedWithCharge, Denied,
                                                      EntitlementService)
from marketplace.services.usage_service import month_key

USER = "user_1"


def set_usage(db, now, free=0, featured=0, vehicle=0):
    db.add(ListingUsage(
        id=f"usage-{USER}",
        user_id=USER,
        month_year=month_key(now),
        free_listings_used=free,
        featured_listings_used=featured,
        vehicle_listings_used=vehicle,
        total_listings_created=free,
    ))
    db.commit()


class TestScenarios:

    def test_fresh_free_user_may_create_featured(self, seeded_db, entitlement_service, now):
        """Pool not exhausted: every type is allowed, even with a 0 featured ceiling"""
        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FEATURED, now)

        assert isinstance(decision, Allowed)
        assert decision.allowed is True
        assert decision.requires_payment is False
        assert decision.to_dict() == {"allowed": True, "requires_payment": False}

    def test_exhausted_pool_requires_payment(self, seeded_db, entitlement_service, now):
        entitlement_service.subscription_service.get_or_create_subscription(seeded_db, USER, now)
        set_usage(seeded_db, now, free=5)

        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FREE, now)

        assert isinstance(decision, AllowedWithCharge)
        assert decision.allowed is False
        assert decision.requires_payment is True
        assert decision.additional_cost == Decimal("5.00")
        assert "5" in decision.reason
        assert decision.to_dict()["additional_cost"] == 5.0

    def test_cancelled_plan_applies_until_period_end(self, seeded_db, entitlement_service, get_plan, now):
        subscriptions = entitlement_service.subscription_service
        original = subscriptions.upgrade_subscription(seeded_db, USER, get_plan("Basic").id, now)
        subscriptions.cancel_subscription(seeded_db, USER, now + timedelta(days=20))

        current = subscriptions.get_or_create_subscription(seeded_db, USER, now + timedelta(days=20))
        assert current.id == original.id
        assert current.plan.name == "Basic"

    def test_free_plan_cannot_be_deleted(self, seeded_db, get_plan):
        from marketplace.services.plan_service import PlanService

        with pytest.raises(ProtectedResourceError):
            PlanService(analytics=MagicMock()).delete_plan(seeded_db, get_plan("Free").id)
        assert seeded_db.query(SubscriptionPlan).filter(SubscriptionPlan.name == "Free").count() == 1


class TestPoolRule:

    def test_below_limit_is_allowed(self, seeded_db, entitlement_service, now):
        entitlement_service.subscription_service.get_or_create_subscription(seeded_db, USER, now)
        set_usage(seeded_db, now, free=4)

        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.VEHICLE, now)
        assert isinstance(decision, Allowed)

    def test_unlimited_plan(self, seeded_db, entitlement_service, get_plan, now):
        entitlement_service.subscription_service.upgrade_subscription(seeded_db, USER, get_plan("Enterprise").id, now)
        set_usage(seeded_db, now, free=1000, featured=500)

        for listing_type in ListingType:
            decision = entitlement_service.check_entitlement(seeded_db, USER, listing_type, now)
            assert isinstance(decision, Allowed)

    def test_exhausted_pool_charges_every_type(self, seeded_db, entitlement_service, now):
        entitlement_service.subscription_service.get_or_create_subscription(seeded_db, USER, now)
        set_usage(seeded_db, now, free=5)

        for listing_type in ListingType:
            decision = entitlement_service.check_entitlement(seeded_db, USER, listing_type, now)
            assert decision.additional_cost == Decimal("5.00")

    def test_charge_uses_configured_price(self, seeded_db, entitlement_service, pricing_service, now):
        pricing_service.set(seeded_db, "additional_listing_price", {"amount": 7.5, "currency": "USD"})
        entitlement_service.subscription_service.get_or_create_subscription(seeded_db, USER, now)
        set_usage(seeded_db, now, free=5)

        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FREE, now)
        assert decision.additional_cost == Decimal("7.50")

    def test_usage_from_previous_month_does_not_count(self, seeded_db, entitlement_service, now):
        entitlement_service.subscription_service.get_or_create_subscription(seeded_db, USER, now)
        set_usage(seeded_db, now, free=5)

        next_month = now + timedelta(days=20)
        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FREE, next_month)
        assert isinstance(decision, Allowed)

    def test_deleted_plan_uses_default_limit(self, seeded_db, entitlement_service, get_plan, now):
        subscriptions = entitlement_service.subscription_service
        subscription = subscriptions.upgrade_subscription(seeded_db, USER, get_plan("Basic").id, now)
        subscription.plan_id = None
        seeded_db.commit()
        set_usage(seeded_db, now, free=5)

        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FREE, now)
        assert isinstance(decision, AllowedWithCharge)

    def test_suspended_user_is_denied(self, seeded_db, entitlement_service, now):
        entitlement_service.subscription_service.suspend_subscription(seeded_db, USER, now)

        decision = entitlement_service.check_entitlement(seeded_db, USER, ListingType.FREE, now)

        assert isinstance(decision, Denied)
        assert decision.allowed is False
        assert decision.requires_payment is False
        assert "suspended" in decision.reason


class TestDegradedMode:

    def test_store_failure_fails_open(self, analytics):
        subscription_service = MagicMock()
        subscription_service.get_or_create_subscription.side_effect = OperationalError("SELECT", {}, Exception("down"))
        service = EntitlementService(
            subscription_service=subscription_service,
            usage_service=MagicMock(),
            pricing=MagicMock(),
            analytics=analytics,
        )
        db = MagicMock()

        decision = service.check_entitlement(db, USER, ListingType.FEATURED)

        assert isinstance(decision, Allowed)
        assert decision.degraded is True
        assert decision.to_dict()["degraded"] is True
        analytics.log_degraded.assert_called_once()

    def test_other_errors_propagate(self, analytics):
        subscription_service = MagicMock()
        subscription_service.get_or_create_subscription.side_effect = RuntimeError("bug")
        service = EntitlementService(
            subscription_service=subscription_service,
            usage_service=MagicMock(),
            pricing=MagicMock(),
            analytics=analytics,
        )

        with pytest.raises(RuntimeError):
            service.check_entitlement(MagicMock(), USER, ListingType.FREE)


class TestRecordListingCreated:

    def test_featured_increments_pool_and_featured(self, seeded_db, entitlement_service, now):
        snapshot = entitlement_service.record_listing_created(seeded_db, USER, ListingType.FEATURED, now)

        assert snapshot.free_listings_used == 1
        assert snapshot.featured_listings_used == 1
        assert snapshot.total_listings_created == 1

    def test_usage_view(self, seeded_db, entitlement_service, now):
        entitlement_service.record_listing_created(seeded_db, USER, ListingType.VEHICLE, now)
        view = entitlement_service.get_usage(seeded_db, USER, now)

        assert view["plan_name"] == "Free"
        assert view["usage"]["vehicle_listings_used"] == 1
        assert view["limits"]["max_listings"] == 5

    def test_pricing_config_defaults(self, seeded_db, entitlement_service):
        config = entitlement_service.get_pricing_config(seeded_db)

        assert config["additional_listing_price"] == 5.00
        assert config["additional_featured_price"] == 2.99
        assert config["additional_vehicle_price"] == 4.99
