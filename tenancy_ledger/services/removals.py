"""Run due tenant removals: on startup (restoring timers) and periodically"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from tenancy_ledger.config import settings
from tenancy_ledger.domain.exceptions import ConcurrencyConflictError, PendingObligationsError
from tenancy_ledger.infrastructure.database.session import SessionLocal, session_scope
from tenancy_ledger.infrastructure.scheduler import RemovalScheduler
from tenancy_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


def sweep_due_removals(factory: sessionmaker = SessionLocal, now: Optional[datetime] = None) -> List[str]:
    """
    Remove every tenant whose removal timer has expired and who owes nothing.

    Each tenant is handled in its own session; a tenant that cannot be removed
    now keeps its timer and is retried on the next sweep.

    Returns:
        Ids of removed tenants
    """
    with session_scope(factory) as db:
        due = RemovalScheduler(db).due(now)

    removed: List[str] = []
    for tenant_id in due:
        with session_scope(factory) as db:
            try:
                if LedgerService(db).remove_if_eligible(tenant_id):
                    removed.append(tenant_id)
            except (PendingObligationsError, ConcurrencyConflictError) as e:
                logger.warning(f"Scheduled removal retried later: {e}", extra={"tenant_id": tenant_id})

    if due:
        logger.info("Removal sweep finished", extra={"due": len(due), "removed": len(removed)})
    return removed


async def run_removal_sweeper(
    interval_seconds: float = settings.removal_sweep_interval_seconds,
    factory: sessionmaker = SessionLocal,
) -> None:
    """Sweep forever; cancelled on application shutdown"""
    while True:
        await asyncio.to_thread(sweep_due_removals, factory)
        await asyncio.sleep(interval_seconds)
