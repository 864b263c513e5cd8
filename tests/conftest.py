from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from subscription_access.alerts import reset_deny_counts
from subscription_access.cache import PolicyCache
from subscription_access.db import Base, SubscriptionPlanRow, SubscriptionRow, SystemSettingRow
from subscription_access.models import PolicyConfig
from subscription_access.service import SubscriptionAccessService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock handed to the service under test."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Test Database Fixtures
# =============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def plans(db_session):
    """Two active plans and one retired plan."""
    db_session.add_all([
        SubscriptionPlanRow(id="monthly", name="Monthly", name_ar="شهري", price=Decimal("9.99"), duration_days=30),
        SubscriptionPlanRow(id="yearly", name="Yearly", name_ar="سنوي", price=Decimal("99.00"), duration_days=365),
        SubscriptionPlanRow(id="legacy", name="Legacy", price=Decimal("4.99"), duration_days=30, is_active=False),
    ])
    db_session.commit()
    return ["monthly", "yearly", "legacy"]


@pytest.fixture
def put_setting(db_session):
    def _put(key: str, value: str) -> None:
        row = db_session.get(SystemSettingRow, key)
        if row is None:
            db_session.add(SystemSettingRow(key=key, value=value))
        else:
            row.value = value
        db_session.commit()

    return _put


@pytest.fixture
def add_subscription(db_session):
    """Insert a raw subscription row, bypassing the activation path."""

    def _add(user_id: str = "user-1", status: str = "ACTIVE", created_at: datetime = None, **fields) -> int:
        row = SubscriptionRow(
            user_id=user_id,
            status=status,
            start_date=fields.pop("start_date", NOW - timedelta(days=30)),
            created_at=created_at or NOW - timedelta(days=30),
            **fields,
        )
        db_session.add(row)
        db_session.commit()
        return row.id

    return _add


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_events():
    return []


@pytest.fixture
def service(db_session, clock, audit_events):
    return SubscriptionAccessService.from_session(
        db_session,
        cache=PolicyCache(redis_url=""),
        clock=clock,
        audit_sink=lambda event, payload: audit_events.append((event, payload)),
    )


@pytest.fixture
def policy():
    return PolicyConfig()


@pytest.fixture(autouse=True)
def _reset_deny_counts():
    reset_deny_counts()
    yield
    reset_deny_counts()
