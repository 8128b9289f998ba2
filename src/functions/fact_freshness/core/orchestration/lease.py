"""Short-lived claims on due facts so overlapping runs never double-process them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..contracts.facts import Fact
from ..errors import LeaseLost

logger = logging.getLogger(__name__)


class LeaseStore(Protocol):
    def claim_fact(self, fact_id: str, observed_next_due: Optional[datetime], lease_until: datetime) -> bool: ...

    def release_fact(self, fact_id: str, lease_until: datetime, restore_to: Optional[datetime]) -> bool: ...


@dataclass(slots=True)
class Lease:
    fact_id: str
    observed_next_due: Optional[datetime]
    until: Optional[datetime]

    @property
    def held(self) -> bool:
        return self.until is not None


class LeaseManager:
    """Claims a fact by moving its ``next_update`` from the observed value to a lease expiry.

    A successful commit overwrites the lease with the real next-due time. A
    skip or failure releases it, restoring the observed value.
    """

    def __init__(self, store: LeaseStore, *, enabled: bool = True, lease_seconds: int = 300) -> None:
        self._store = store
        self._enabled = enabled
        self._duration = timedelta(seconds=lease_seconds)

    def claim(self, fact: Fact, now: datetime) -> Lease:
        if not self._enabled:
            return Lease(fact.id, fact.next_due, None)
        until = now + self._duration
        if not self._store.claim_fact(fact.id, fact.next_due, until):
            raise LeaseLost(fact.id)
        logger.debug("Claimed fact %s until %s", fact.id, until.isoformat())
        return Lease(fact.id, fact.next_due, until)

    def release(self, lease: Optional[Lease]) -> None:
        if lease is None or not lease.held:
            return
        if not self._store.release_fact(lease.fact_id, lease.until, lease.observed_next_due):
            logger.debug("Lease on fact %s was already overwritten", lease.fact_id)
