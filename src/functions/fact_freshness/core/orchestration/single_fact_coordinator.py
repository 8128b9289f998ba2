"""Refresh one unclustered fact."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from ..contracts.config import OrchestratorConfig
from ..contracts.facts import Fact, UpdateRecord, utcnow
from ..contracts.resolution import ValueProposal
from ..contracts.run_report import ItemOutcome
from ..db.fact_store import FactStore
from ..errors import LeaseLost, PersistenceError
from ..integration.value_resolution import ValueResolver
from .lease import LeaseManager

logger = logging.getLogger(__name__)


class SingleFactCoordinator:
    """Resolves and persists a single fact.

    Outcomes are updated, skipped (explicit no-data, or a lease lost before
    resolution or at commit) and failed.
    Only an update mutates the fact row; every attempt that still held its lease
    appends exactly one history record.
    """

    def __init__(
        self,
        *,
        store: FactStore,
        resolver: ValueResolver,
        config: OrchestratorConfig,
        leases: Optional[LeaseManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._config = config
        self._leases = leases or LeaseManager(store, enabled=config.lease_enabled, lease_seconds=config.lease_seconds)
        self._clock = clock

    def process(self, fact: Fact, *, method: Optional[str] = None) -> ItemOutcome:
        method = method or self._config.update_method
        started = time.monotonic()
        now = self._clock()
        dry_run = self._config.dry_run
        logger.info("Processing fact %s (%s)", fact.id, fact.subtype or fact.category.value)

        lease = None
        if not dry_run:
            try:
                lease = self._leases.claim(fact, now)
            except LeaseLost as exc:
                return self._outcome(fact, "skipped", started, reason=str(exc))

        try:
            proposal = self._resolver.resolve_fact(fact, method=method)
        except Exception as exc:
            self._leases.release(lease)
            if not dry_run:
                self._record_failure(fact, method, exc, now)
            raise

        if proposal.no_data:
            self._leases.release(lease)
            if not dry_run:
                self._store.insert_update_record(
                    UpdateRecord(
                        fact_id=fact.id,
                        previous_value=fact.current_value,
                        new_value=None,
                        source=proposal.source,
                        method=method,
                        validation_status="pending",
                        outcome="skipped",
                        reasoning=proposal.error,
                        metadata=proposal.metadata,
                        created_at=now,
                    )
                )
            return self._outcome(fact, "skipped", started, reason=proposal.error or "No data available")

        validation_status = "approved" if proposal.validated else "pending"
        if dry_run:
            return self._outcome(
                fact, "updated", started, proposal=proposal, validation_status=validation_status, reason="dry run"
            )

        try:
            self._commit(fact, proposal, validation_status, method, now, lease_until=lease.until if lease else None)
        except LeaseLost as exc:
            logger.warning("Fact %s changed hands before commit; dropping result", fact.id)
            return self._outcome(fact, "skipped", started, reason=str(exc))
        except Exception as exc:
            self._leases.release(lease)
            self._record_failure(fact, method, exc, now)
            raise

        logger.info("Fact %s updated: %r -> %r", fact.id, fact.current_value, proposal.updated_value)
        return self._outcome(fact, "updated", started, proposal=proposal, validation_status=validation_status)

    def _commit(
        self,
        fact: Fact,
        proposal: ValueProposal,
        validation_status: str,
        method: str,
        now: datetime,
        *,
        lease_until: Optional[datetime] = None,
    ) -> None:
        self._store.update_fact(
            fact.id,
            {
                "current_value": proposal.updated_value,
                "last_updated": now.isoformat(),
                "next_update": (now + fact.cadence).isoformat(),
                "update_count": fact.refresh_count + 1,
                "confidence_score": proposal.confidence,
                "source_url": proposal.source,
            },
            lease_until=lease_until,
        )
        record = UpdateRecord(
            fact_id=fact.id,
            previous_value=fact.current_value,
            new_value=proposal.updated_value,
            source=proposal.source,
            method=method,
            validation_status=validation_status,
            outcome="updated",
            confidence=proposal.confidence,
            reasoning=proposal.reasoning,
            metadata=proposal.metadata,
            created_at=now,
        )
        try:
            self._store.insert_update_record(record)
        except PersistenceError:
            # fact was read before the lease, so this also drops the claim
            self._store.restore_fact(fact)
            raise

    def _record_failure(self, fact: Fact, method: str, exc: BaseException, now: datetime) -> None:
        """Append a "failed" history record; never raises."""

        try:
            self._store.insert_update_record(
                UpdateRecord(
                    fact_id=fact.id,
                    previous_value=fact.current_value,
                    new_value=None,
                    source=None,
                    method=method,
                    validation_status="pending",
                    outcome="failed",
                    reasoning=str(exc),
                    metadata={"stage": getattr(exc, "stage", "general"), "error_type": type(exc).__name__},
                    created_at=now,
                )
            )
        except PersistenceError as record_exc:
            logger.warning("Could not record failure for fact %s: %s", fact.id, record_exc)

    @staticmethod
    def _outcome(
        fact: Fact,
        status: str,
        started: float,
        *,
        proposal: Optional[ValueProposal] = None,
        validation_status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ItemOutcome:
        return ItemOutcome(
            item_type="single_fact",
            item_id=fact.id,
            status=status,
            name=fact.subtype or fact.category.value,
            facts_updated=1 if status == "updated" else 0,
            old_value=fact.current_value,
            new_value=proposal.updated_value if proposal else None,
            source=proposal.source if proposal else None,
            confidence=proposal.confidence_label if proposal else None,
            validation_status=validation_status,
            reason=reason,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
