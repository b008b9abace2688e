"""Per-tenant mutual exclusion for ledger writes within one process"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from tenancy_ledger.config import settings
from tenancy_ledger.domain.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class TenantLockRegistry:
    """
    One lock per tenant id.

    Writers for the same tenant queue for at most `timeout` seconds; writers
    for different tenants never contend. Cross-process conflicts are caught
    by the version columns on the ledger tables.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = settings.tenant_lock_timeout_seconds if timeout is None else timeout
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]; dropped when nobody uses it
        self._locks: Dict[str, List] = {}

    def active_keys(self) -> List[str]:
        """Keys with a holder or a waiter"""
        with self._guard:
            return sorted(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the tenant's lock for the duration of the block.

        Raises:
            ConcurrencyConflictError: Lock not acquired within the timeout
        """
        lock = self._checkout(key)
        if not lock.acquire(timeout=self.timeout):
            self._checkin(key)
            logger.warning("Tenant lock timeout", extra={"tenant_id": key, "timeout_seconds": self.timeout})
            raise ConcurrencyConflictError(f"Another update for tenant {key} is in progress; retry")
        try:
            yield
        finally:
            lock.release()
            self._checkin(key)


tenant_locks = TenantLockRegistry()
