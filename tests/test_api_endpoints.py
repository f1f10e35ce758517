"""
Tests for API endpoints
"""

import pytest
from fastapi.testclient import TestClient

from marketplace.core.database import get_db
from marketplace.core.middleware import get_current_user
from marketplace.models.listing_usage import ListingUsage
from marketplace.models.subscription_plan import SubscriptionPlan
from marketplace.services.usage_service import month_key

USER = {"uid": "test_user_123", "email": "test@example.com", "is_admin": False, "token": {"uid": "test_user_123"}}
ADMIN = {"uid": "admin_1", "email": "admin@example.com", "is_admin": False, "token": {"uid": "admin_1"}}


@pytest.fixture
def app(session_factory):
    """Application wired to the test database"""
    from marketplace.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    app.dependency_overrides[get_current_user] = lambda: USER
    return TestClient(app)


@pytest.fixture
def admin_client(app):
    app.dependency_overrides[get_current_user] = lambda: ADMIN
    return TestClient(app)


def plan_id(session_factory, name):
    db = session_factory()
    try:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name).one().id
    finally:
        db.close()


class TestHealthEndpoint:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAuthentication:

    def test_invalid_token_is_rejected(self, app, mock_firebase_admin):
        mock_firebase_admin.side_effect = ValueError("bad token")
        response = TestClient(app).get(
            "/api/v1/subscriptions/current",
            headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    def test_valid_token(self, app, mock_firebase_admin):
        mock_firebase_admin.return_value = {"uid": "token_user", "email": "t@example.com"}
        response = TestClient(app).get(
            "/api/v1/subscriptions/current",
            headers={"Authorization": "Bearer good-token"}
        )
        assert response.status_code == 200
        assert response.json()["user_id"] == "token_user"


class TestSubscriptionEndpoints:

    def test_plans_are_public_and_seeded(self, client):
        response = client.get("/api/v1/subscriptions/plans")

        assert response.status_code == 200
        names = [plan["name"] for plan in response.json()["plans"]]
        assert names == ["Free", "Basic", "Professional", "Enterprise"]

    def test_current_subscription_defaults_to_free(self, client):
        response = client.get("/api/v1/subscriptions/current")

        assert response.status_code == 200
        body = response.json()
        assert body["plan_name"] == "Free"
        assert body["limits"]["max_listings"] == 5

    def test_upgrade_and_history(self, client, session_factory):
        client.get("/api/v1/subscriptions/plans")
        basic_id = plan_id(session_factory, "Basic")

        response = client.post("/api/v1/subscriptions/upgrade", json={"plan_id": basic_id})
        assert response.status_code == 200
        assert response.json()["plan_name"] == "Basic"

        history = client.get("/api/v1/subscriptions/history").json()["history"]
        assert {entry["action"] for entry in history} == {"created", "upgraded"}

    def test_upgrade_to_unknown_plan(self, client):
        response = client.post("/api/v1/subscriptions/upgrade", json={"plan_id": "missing"})
        assert response.status_code == 404

    def test_cancel_then_reactivate(self, client):
        client.get("/api/v1/subscriptions/current")

        response = client.post("/api/v1/subscriptions/cancel")
        assert response.status_code == 200
        assert "current_period_end" in response.json()

        assert client.post("/api/v1/subscriptions/cancel").status_code == 404

        response = client.post("/api/v1/subscriptions/reactivate")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_reactivate_active_subscription(self, client):
        client.get("/api/v1/subscriptions/current")
        assert client.post("/api/v1/subscriptions/reactivate").status_code == 400

    def test_entitlement_and_usage(self, client):
        response = client.get("/api/v1/subscriptions/entitlement", params={"listing_type": "featured"})
        assert response.status_code == 200
        assert response.json() == {"allowed": True, "requires_payment": False}

        usage = client.get("/api/v1/subscriptions/usage").json()
        assert usage["usage"]["free_listings_used"] == 0

    def test_entitlement_when_pool_exhausted(self, client, session_factory):
        client.get("/api/v1/subscriptions/current")
        db = session_factory()
        db.add(ListingUsage(id="u1", user_id=USER["uid"], month_year=month_key(), free_listings_used=5))
        db.commit()
        db.close()

        body = client.get("/api/v1/subscriptions/entitlement", params={"listing_type": "free"}).json()
        assert body["allowed"] is False
        assert body["requires_payment"] is True
        assert body["additional_cost"] == 5.0

    def test_pricing(self, client):
        pricing = client.get("/api/v1/subscriptions/pricing").json()["pricing"]
        assert pricing["additional_listing_price"] == 5.0


class TestListingEndpoints:

    def test_create_list_delete(self, client):
        response = client.post("/api/v1/listings", json={
            "title": "Desk lamp",
            "price": "15.00",
            "listing_type": "featured",
        })
        assert response.status_code == 201
        listing = response.json()
        assert listing["is_featured"] is True

        mine = client.get("/api/v1/listings/mine").json()["listings"]
        assert [item["id"] for item in mine] == [listing["id"]]

        assert client.delete(f"/api/v1/listings/{listing['id']}").status_code == 200
        assert client.delete(f"/api/v1/listings/{listing['id']}").status_code == 404

    def test_payment_required(self, client, session_factory):
        client.get("/api/v1/subscriptions/current")
        db = session_factory()
        db.add(ListingUsage(id="u1", user_id=USER["uid"], month_year=month_key(), free_listings_used=5))
        db.commit()
        db.close()

        response = client.post("/api/v1/listings", json={"title": "Sofa", "price": "80.00"})

        assert response.status_code == 402
        assert response.json()["detail"]["additional_cost"] == 5.0

    def test_invalid_listing(self, client):
        response = client.post("/api/v1/listings", json={"title": "", "price": "10.00"})
        assert response.status_code == 422


class TestPaymentEndpoints:

    def test_create_and_list(self, client):
        response = client.post("/api/v1/payments", json={
            "amount": "5.00",
            "payment_type": "additional_listing",
            "payment_method": "card",
            "provider_payment_id": "pi_123",
        })
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        payments = client.get("/api/v1/payments").json()["payments"]
        assert [payment["provider_payment_id"] for payment in payments] == ["pi_123"]

    def test_duplicate_provider_id(self, client):
        payload = {
            "amount": "5.00",
            "payment_type": "additional_listing",
            "payment_method": "card",
            "provider_payment_id": "pi_dup",
        }
        assert client.post("/api/v1/payments", json=payload).status_code == 201

        response = client.post("/api/v1/payments", json=payload)
        assert response.status_code == 400
        assert "already recorded" in response.json()["detail"]


class TestAdminEndpoints:

    def test_requires_admin(self, client):
        assert client.get("/api/v1/admin/plans").status_code == 403

    def test_admin_by_custom_claim(self, app):
        app.dependency_overrides[get_current_user] = lambda: {**USER, "is_admin": True}
        assert TestClient(app).get("/api/v1/admin/plans").status_code == 200

    def test_plan_crud(self, admin_client, session_factory):
        response = admin_client.post("/api/v1/admin/plans", json={
            "name": "Dealer",
            "price_monthly": "29.99",
            "max_listings": 50,
            "sort_order": 5,
        })
        assert response.status_code == 201
        dealer_id = response.json()["id"]

        response = admin_client.patch(f"/api/v1/admin/plans/{dealer_id}", json={"max_listings": 60})
        assert response.json()["max_listings"] == 60

        assert admin_client.delete(f"/api/v1/admin/plans/{dealer_id}").status_code == 200

    def test_free_plan_is_protected(self, admin_client, session_factory):
        admin_client.get("/api/v1/subscriptions/plans")
        free_id = plan_id(session_factory, "Free")

        response = admin_client.delete(f"/api/v1/admin/plans/{free_id}")
        assert response.status_code == 400

        response = admin_client.patch(f"/api/v1/admin/plans/{free_id}", json={"name": "Starter"})
        assert response.status_code == 400

    def test_set_price(self, admin_client):
        response = admin_client.put("/api/v1/admin/pricing/additional_listing_price", json={
            "value": {"amount": 6.5, "currency": "USD"}
        })
        assert response.status_code == 200

        pricing = admin_client.get("/api/v1/subscriptions/pricing").json()["pricing"]
        assert pricing["additional_listing_price"] == {"amount": 6.5, "currency": "USD"}

    def test_confirm_payment_then_paid_listing(self, app, session_factory):
        user_client = TestClient(app)
        app.dependency_overrides[get_current_user] = lambda: USER
        user_client.get("/api/v1/subscriptions/current")
        db = session_factory()
        db.add(ListingUsage(id="u1", user_id=USER["uid"], month_year=month_key(), free_listings_used=5))
        db.commit()
        db.close()
        payment = user_client.post("/api/v1/payments", json={
            "amount": "5.00",
            "payment_type": "additional_listing",
            "payment_method": "card",
            "provider_payment_id": "pi_paid",
        }).json()

        app.dependency_overrides[get_current_user] = lambda: ADMIN
        response = user_client.post("/api/v1/admin/payments/pi_paid/status", json={"status": "succeeded"})
        assert response.status_code == 200

        app.dependency_overrides[get_current_user] = lambda: USER
        response = user_client.post("/api/v1/listings", json={
            "title": "Sofa",
            "price": "80.00",
            "payment_id": payment["id"],
        })
        assert response.status_code == 201
        assert response.json()["listing_fee"] == 5.0

    def test_suspend_resume_and_reset(self, admin_client):
        response = admin_client.post("/api/v1/admin/users/user_9/suspend")
        assert response.status_code == 200
        assert response.json()["status"] == "suspended"

        response = admin_client.post("/api/v1/admin/users/user_9/resume")
        assert response.json()["status"] == "active"

        response = admin_client.post("/api/v1/admin/users/user_9/reset-usage")
        assert response.json() == {"user_id": "user_9", "rows_updated": 0}

    def test_expire_job(self, admin_client):
        response = admin_client.post("/api/v1/admin/subscriptions/expire")
        assert response.status_code == 200
        assert response.json() == {"processed_users": 0}
