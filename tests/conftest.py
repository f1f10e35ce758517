"""
Pytest configuration for testing
"""

import json
import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Create mock Firebase credentials before any imports
credentials_path = "/tmp/test-marketplace-creds.json"
if not os.path.exists(credentials_path):
    os.makedirs(os.path.dirname(credentials_path), exist_ok=True)
    with open(credentials_path, "w") as f:
        json.dump({
            "type": "service_account",
            "project_id": "test-project",
            "private_key_id": "test-key-id",
            "client_email": "test@test-project.iam.gserviceaccount.com",
            "client_id": "123456789",
            "token_uri": "https://oauth2.googleapis.com/token",
        }, f)

# Set up environment variables for testing before any imports
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FIREBASE_PROJECT_ID"] = "test-project"
os.environ["FIREBASE_CREDENTIALS_PATH"] = credentials_path
os.environ["PRICING_CACHE_ENABLED"] = "false"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["REDIS_PASSWORD"] = ""
os.environ["ADMIN_EMAILS"] = "admin@example.com"


# Mock Firebase Admin before it's used
@pytest.fixture(autouse=True)
def mock_firebase_admin(monkeypatch):
    """Mock Firebase Admin SDK to avoid initialization issues in tests"""
    mock_credentials = MagicMock()
    mock_credentials.Certificate.return_value = MagicMock()
    monkeypatch.setattr("firebase_admin.credentials.Certificate", mock_credentials.Certificate)

    mock_init = MagicMock()
    monkeypatch.setattr("firebase_admin.initialize_app", mock_init)

    mock_verify = MagicMock()
    monkeypatch.setattr("firebase_admin.auth.verify_id_token", mock_verify)

    # Mock firestore client
    mock_firestore = MagicMock()
    monkeypatch.setattr("firebase_admin.firestore.client", mock_firestore)

    yield mock_verify


@pytest.fixture
def db_engine():
    """In-memory SQLite database with every table created"""
    from marketplace.core.database import Base
    import marketplace.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """Create a new database session for a test"""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def analytics():
    """Analytics double; lets tests assert on reported events"""
    return MagicMock()


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture
def plan_service(analytics):
    from marketplace.services.plan_service import PlanService
    return PlanService(analytics=analytics)


@pytest.fixture
def subscription_service(plan_service, analytics):
    from marketplace.services.subscription_service import SubscriptionService
    return SubscriptionService(plan_service=plan_service, analytics=analytics)


@pytest.fixture
def usage_service(analytics):
    from marketplace.services.usage_service import UsageService
    return UsageService(analytics=analytics)


@pytest.fixture
def pricing_service(analytics):
    from marketplace.services.pricing_service import PricingConfigService
    return PricingConfigService(analytics=analytics)


@pytest.fixture
def entitlement_service(subscription_service, usage_service, pricing_service, analytics):
    from marketplace.services.entitlement_service import EntitlementService
    return EntitlementService(
        subscription_service=subscription_service,
        usage_service=usage_service,
        pricing=pricing_service,
        analytics=analytics,
    )


@pytest.fixture
def seeded_db(db_session, plan_service):
    """Session on a database holding the default plans"""
    plan_service.seed_plans_if_empty(db_session)
    return db_session


@pytest.fixture
def get_plan(seeded_db):
    """Look up a seeded plan by name"""
    from marketplace.models.subscription_plan import SubscriptionPlan

    def _get(name):
        return seeded_db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name).one()
    return _get
