"""
Storage boundaries for the subscription engine.

The Protocols describe what the engine needs from its collaborators; the
Sql* classes are the SQLAlchemy-backed implementations.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Protocol

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from .db import SubscriptionPlanRow, SubscriptionRow, SystemSettingRow
from .errors import ActivationConflictError
from .models import (
    LIVE_STATUSES,
    Plan,
    SubscriptionRecord,
    SubscriptionStatus,
    as_utc,
    utcnow,
)


class SettingsStore(Protocol):
    def get_setting(self, key: str) -> Optional[str]:
        ...


class PlanRepository(Protocol):
    def find_active_by_id(self, plan_id: str) -> Optional[Plan]:
        ...

    def list_active(self) -> List[Plan]:
        ...


class SubscriptionRepository(Protocol):
    """Persistence for subscription records. Records are never deleted."""

    def find_current_by_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...

    def list_by_user(self, user_id: str) -> List[SubscriptionRecord]:
        ...

    def list_reconcile_candidates(
        self, now: datetime, limit: int, after_id: Optional[int] = None
    ) -> List[SubscriptionRecord]:
        ...

    def update(self, record: SubscriptionRecord, *, expected_status: SubscriptionStatus) -> bool:
        ...

    def create(self, record: SubscriptionRecord) -> SubscriptionRecord:
        ...

    def supersede(self, user_id: str) -> int:
        ...

    def atomic(self, user_id: Optional[str] = None):
        ...


def _plan_from_row(row: SubscriptionPlanRow) -> Plan:
    return Plan(
        id=row.id,
        name=row.name,
        name_ar=row.name_ar,
        price=row.price,
        duration_days=row.duration_days,
        is_active=bool(row.is_active),
    )


def _record_from_row(row: SubscriptionRow) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row.id,
        user_id=row.user_id,
        plan_id=row.plan_id,
        status=SubscriptionStatus(row.status),
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        trial_start=as_utc(row.trial_start),
        trial_end=as_utc(row.trial_end),
        grace_period_end=as_utc(row.grace_period_end),
        created_at=as_utc(row.created_at),
        plan=_plan_from_row(row.plan) if row.plan is not None else None,
    )


class SqlSettingsStore:
    def __init__(self, db_session: Session):
        self.db_session = db_session

    def get_setting(self, key: str) -> Optional[str]:
        row = self.db_session.get(SystemSettingRow, key)
        return row.value if row is not None else None


class SqlPlanRepository:
    def __init__(self, db_session: Session):
        self.db_session = db_session

    def find_active_by_id(self, plan_id: str) -> Optional[Plan]:
        row = self.db_session.execute(
            select(SubscriptionPlanRow).where(
                SubscriptionPlanRow.id == plan_id,
                SubscriptionPlanRow.is_active.is_(True),
            )
        ).scalar_one_or_none()
        return _plan_from_row(row) if row is not None else None

    def list_active(self) -> List[Plan]:
        rows = self.db_session.execute(
            select(SubscriptionPlanRow)
            .where(SubscriptionPlanRow.is_active.is_(True))
            .order_by(SubscriptionPlanRow.price.asc(), SubscriptionPlanRow.id.asc())
        ).scalars().all()
        return [_plan_from_row(row) for row in rows]


class SqlSubscriptionRepository:
    """
    SQLAlchemy subscription repository.

    Writes are only flushed; callers wrap them in ``atomic()`` which owns
    commit and rollback.
    """

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def find_current_by_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        row = self.db_session.execute(
            select(SubscriptionRow)
            .where(SubscriptionRow.user_id == user_id)
            .order_by(SubscriptionRow.created_at.desc(), SubscriptionRow.id.desc())
            .limit(1)
        ).unique().scalar_one_or_none()
        return _record_from_row(row) if row is not None else None

    def list_by_user(self, user_id: str) -> List[SubscriptionRecord]:
        rows = self.db_session.execute(
            select(SubscriptionRow)
            .where(SubscriptionRow.user_id == user_id)
            .order_by(SubscriptionRow.created_at.desc(), SubscriptionRow.id.desc())
        ).unique().scalars().all()
        return [_record_from_row(row) for row in rows]

    def list_reconcile_candidates(
        self, now: datetime, limit: int, after_id: Optional[int] = None
    ) -> List[SubscriptionRecord]:
        """
        Current records whose stored status is stale at ``now``, ordered by id.

        Older (superseded) records are never returned. ``after_id`` pages by keyset.
        """
        newer = aliased(SubscriptionRow)
        has_newer = (
            select(newer.id)
            .where(
                newer.user_id == SubscriptionRow.user_id,
                or_(
                    newer.created_at > SubscriptionRow.created_at,
                    and_(newer.created_at == SubscriptionRow.created_at, newer.id > SubscriptionRow.id),
                ),
            )
            .correlate(SubscriptionRow)
            .exists()
        )
        query = select(SubscriptionRow).where(
            ~has_newer,
            or_(
                and_(
                    SubscriptionRow.status == SubscriptionStatus.TRIAL.value,
                    SubscriptionRow.trial_end.isnot(None),
                    SubscriptionRow.trial_end <= now,
                ),
                and_(
                    SubscriptionRow.status == SubscriptionStatus.ACTIVE.value,
                    SubscriptionRow.end_date.isnot(None),
                    SubscriptionRow.end_date <= now,
                ),
            ),
        )
        if after_id is not None:
            query = query.where(SubscriptionRow.id > after_id)
        rows = self.db_session.execute(
            query.order_by(SubscriptionRow.id.asc()).limit(limit)
        ).unique().scalars().all()
        return [_record_from_row(row) for row in rows]

    def update(self, record: SubscriptionRecord, *, expected_status: SubscriptionStatus) -> bool:
        """
        Compare-and-set the stored status.

        Returns False when the row no longer holds ``expected_status``.
        ``grace_period_end`` is only written while the stored value is NULL.
        """
        if record.id is None:
            raise ValueError("record id is required for update")

        values = {"status": record.status.value, "updated_at": utcnow()}
        if record.grace_period_end is not None:
            values["grace_period_end"] = func.coalesce(SubscriptionRow.grace_period_end, record.grace_period_end)

        result = self.db_session.execute(
            update(SubscriptionRow)
            .where(
                SubscriptionRow.id == record.id,
                SubscriptionRow.status == SubscriptionStatus(expected_status).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def create(self, record: SubscriptionRecord) -> SubscriptionRecord:
        row = SubscriptionRow(
            user_id=record.user_id,
            plan_id=record.plan_id,
            status=record.status.value,
            start_date=record.start_date,
            end_date=record.end_date,
            trial_start=record.trial_start,
            trial_end=record.trial_end,
            grace_period_end=record.grace_period_end,
            created_at=record.created_at,
        )
        self.db_session.add(row)
        self.db_session.flush()
        self.db_session.refresh(row)
        return _record_from_row(row)

    def supersede(self, user_id: str) -> int:
        """Cancel every live (TRIAL/ACTIVE) record of the user. Rows are locked first."""
        live = [status.value for status in LIVE_STATUSES]
        self.db_session.execute(
            select(SubscriptionRow.id)
            .where(SubscriptionRow.user_id == user_id, SubscriptionRow.status.in_(live))
            .with_for_update()
        ).all()
        result = self.db_session.execute(
            update(SubscriptionRow)
            .where(SubscriptionRow.user_id == user_id, SubscriptionRow.status.in_(live))
            .values(status=SubscriptionStatus.CANCELLED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @contextmanager
    def atomic(self, user_id: Optional[str] = None) -> Iterator["SqlSubscriptionRepository"]:
        """Transactional boundary: commit on success, rollback on any failure."""
        try:
            yield self
            self.db_session.commit()
        except IntegrityError as exc:
            self.db_session.rollback()
            if user_id is None:
                raise
            raise ActivationConflictError(user_id) from exc
        except Exception:
            self.db_session.rollback()
            raise
