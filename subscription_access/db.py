"""
SQLAlchemy tables backing the subscription repositories.

The engine itself is storage-agnostic; these tables are the default
persistence adapter used by the worker and the HTTP layer.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

_LIVE_STATUS_PREDICATE = "status IN ('TRIAL', 'ACTIVE')"


class SubscriptionPlanRow(Base):
    """Subscription plan catalog entry."""

    __tablename__ = "subscription_plans"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    name_ar = Column(String(255), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_days = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<SubscriptionPlanRow(id={self.id}, duration_days={self.duration_days}, is_active={self.is_active})>"


class SubscriptionRow(Base):
    """
    One entitlement grant per row. Rows are never deleted, only superseded.

    The partial unique index keeps at most one TRIAL/ACTIVE row per user,
    so concurrent activations cannot both survive.
    """

    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    plan_id = Column(String(255), ForeignKey("subscription_plans.id"), nullable=True)
    status = Column(String(50), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    grace_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    plan = relationship(SubscriptionPlanRow, lazy="joined")

    __table_args__ = (
        Index("ix_subscriptions_user_created", "user_id", "created_at"),
        Index("ix_subscriptions_status", "status"),
        Index(
            "uq_subscriptions_user_live",
            "user_id",
            unique=True,
            postgresql_where=text(_LIVE_STATUS_PREDICATE),
            sqlite_where=text(_LIVE_STATUS_PREDICATE),
        ),
    )

    def __repr__(self) -> str:
        return f"<SubscriptionRow(id={self.id}, user_id={self.user_id}, status={self.status})>"


class SystemSettingRow(Base):
    """Admin-editable key/value settings."""

    __tablename__ = "system_settings"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
