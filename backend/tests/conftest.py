"""
Pytest configuration and shared fixtures for the Advisor Chooser backend.
"""
import os
import sys
from pathlib import Path

# Ensure backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

# Patch PostgreSQL UUID type BEFORE any imports
from sqlalchemy.dialects import postgresql
from sqlalchemy import JSON, TypeDecorator, CHAR
import uuid as uuid_module


class GUID(TypeDecorator):
    """Platform-independent GUID type. Uses PostgreSQL's UUID type, otherwise uses CHAR(36)."""
    impl = CHAR
    cache_ok = True

    def __init__(self, as_uuid=True):
        """Accept as_uuid parameter for compatibility with PostgreSQL UUID."""
        self.as_uuid = as_uuid
        super().__init__()

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(_original_uuid(as_uuid=self.as_uuid))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid_module.UUID):
            return value
        return uuid_module.UUID(value)


# Monkey patch BEFORE models are imported
_original_uuid = postgresql.UUID
postgresql.UUID = GUID
_original_jsonb = postgresql.JSONB
_original_array = postgresql.ARRAY


class JSONB(TypeDecorator):
    """SQLite-friendly stand-in for PostgreSQL JSONB."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(_original_jsonb())
        return dialect.type_descriptor(JSON())


class ARRAY(TypeDecorator):
    """SQLite-friendly stand-in for PostgreSQL ARRAY of strings."""

    impl = JSON
    cache_ok = True

    def __init__(self, item_type=None, **kwargs):  # noqa: ANN001
        self.item_type = item_type
        super().__init__(**kwargs)

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(_original_array(self.item_type))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return list(value)


postgresql.JSONB = JSONB
postgresql.ARRAY = ARRAY

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.

    Uses an in-memory SQLite database for fast, isolated testing.
    UUID, JSONB and ARRAY have been patched at module level to work with SQLite.
    """
    from advisor_chooser.db.base import Base
    import advisor_chooser.models  # noqa: F401

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now():
    """Fixed reference time for state machine tests."""
    return datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def advisor_user(db):
    """Advisor without any membership yet."""
    from advisor_chooser.models import User

    user = User(
        email="advisor@test.com",
        name="Ada Advisor",
        role="advisor",
        is_active=True,
        is_superuser=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def active_advisor(db, advisor_user):
    """Advisor with a running one-off membership and a card on file."""
    start = datetime.utcnow() - timedelta(days=30)
    advisor_user.subscription_status = "active"
    advisor_user.subscription_current_period_start = start
    advisor_user.subscription_current_period_end = start + timedelta(days=365)
    advisor_user.stripe_customer_id = "cus_active"
    advisor_user.billing_default_payment_method_id = "pm_card"
    advisor_user.billing_card_brand = "visa"
    advisor_user.billing_card_last4 = "4242"
    db.commit()
    db.refresh(advisor_user)
    return advisor_user


@pytest.fixture
def seller_user(db):
    from advisor_chooser.models import User

    user = User(
        email="seller@test.com",
        name="Sam Seller",
        role="seller",
        is_active=True,
        is_superuser=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db):
    from advisor_chooser.models import User

    user = User(
        email="admin@test.com",
        name="Admin",
        role="seller",
        is_active=True,
        is_superuser=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def gateway():
    """Stripe gateway double; tests configure the calls they expect."""
    from advisor_chooser.services.stripe_gateway import StripeGateway

    mock = MagicMock(spec=StripeGateway)
    mock.price_id = "price_annual"
    mock.retrieve_payment_method.return_value = {
        "id": "pm_card",
        "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030},
    }
    return mock


@pytest.fixture
def payments(gateway):
    from advisor_chooser.services.payments import PaymentService

    return PaymentService(gateway)


@pytest.fixture
def make_coupon(db):
    """Factory for coupons."""
    from advisor_chooser.models import Coupon

    def _make(code="SAVE20", type="percentage", value=20, usage_limit=None, used_count=0,
              expires_at=None, is_active=True):
        coupon = Coupon(
            code=code,
            type=type,
            value=value,
            usage_limit=usage_limit,
            used_count=used_count,
            expires_at=expires_at,
            is_active=is_active,
        )
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon

    return _make
