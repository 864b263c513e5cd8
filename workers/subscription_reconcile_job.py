from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from subscription_access.config import RECONCILE_BATCH_SIZE, RECONCILE_INTERVAL_SECONDS
from subscription_access.service import SubscriptionAccessService

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    started_at: str
    completed_at: Optional[str] = None
    checked: int = 0
    transitioned: int = 0
    grace_frozen: int = 0
    errors: int = 0


def run_subscription_reconcile_cycle(
    service: SubscriptionAccessService,
    batch_size: int = RECONCILE_BATCH_SIZE,
) -> ReconcileStats:
    """Background stored-status reconciliation.

    Responsibilities:
    - expire TRIAL/ACTIVE records whose window has closed
    - freeze grace_period_end on first observed expiry
    """
    stats = ReconcileStats(started_at=datetime.now(timezone.utc).isoformat())

    try:
        results = service.reconcile(batch_size=batch_size)
        stats.checked = results["checked"]
        stats.transitioned = results["transitioned"]
        stats.grace_frozen = results["grace_frozen"]
        stats.errors = len(results["errors"])
    except Exception:
        logger.exception("Subscription reconcile cycle failed")
        stats.errors += 1

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    return stats


def _session_factory(database_url: str) -> Callable[[], Session]:
    engine = create_engine(database_url, pool_pre_ping=True)
    return sessionmaker(bind=engine)


def run_forever(
    session_factory: Callable[[], Session],
    interval_seconds: int = RECONCILE_INTERVAL_SECONDS,
) -> None:
    while True:
        db_session = session_factory()
        try:
            stats = run_subscription_reconcile_cycle(SubscriptionAccessService.from_session(db_session))
            logger.info("Subscription reconcile cycle finished", extra=asdict(stats))
        finally:
            db_session.close()
        time.sleep(interval_seconds)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is required")
    run_forever(_session_factory(database_url))


if __name__ == "__main__":
    main()
