"""Deferred tenant removal timers persisted in the database"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from tenancy_ledger.infrastructure.database.models import ScheduledRemoval
from tenancy_ledger.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class RemovalScheduler:
    """
    Schedule, reschedule and cancel tenant removals.

    Timers live in the `scheduled_removal` table so they survive restarts;
    one active timer per tenant, rescheduling replaces it.
    """

    def __init__(self, db: Session):
        self.db = db

    def schedule(self, tenant_id: str, not_after: datetime) -> ScheduledRemoval:
        job = self.db.get(ScheduledRemoval, tenant_id)
        if job is None:
            job = ScheduledRemoval(tenant_id=tenant_id, not_after=not_after, is_active=True, attempts=0)
            self.db.add(job)
        else:
            job.not_after = not_after
            job.is_active = True
        self.db.flush()
        logger.info("Tenant removal scheduled", extra={"tenant_id": tenant_id, "not_after": not_after.isoformat()})
        return job

    def cancel(self, tenant_id: str) -> None:
        job = self.db.get(ScheduledRemoval, tenant_id)
        if job is not None:
            self.db.delete(job)
            logger.info("Tenant removal cancelled", extra={"tenant_id": tenant_id})

    def get(self, tenant_id: str) -> Optional[ScheduledRemoval]:
        return self.db.get(ScheduledRemoval, tenant_id)

    def mark_attempt(self, tenant_id: str, at: Optional[datetime] = None) -> None:
        job = self.db.get(ScheduledRemoval, tenant_id)
        if job is not None:
            job.attempts += 1
            job.last_attempt_at = at or utc_now()

    def due(self, now: Optional[datetime] = None) -> List[str]:
        """Tenant ids whose active timer has expired"""
        now = now or utc_now()
        rows = (
            self.db.query(ScheduledRemoval.tenant_id)
            .filter(ScheduledRemoval.is_active.is_(True), ScheduledRemoval.not_after <= now)
            .order_by(ScheduledRemoval.not_after)
            .all()
        )
        return [row.tenant_id for row in rows]
