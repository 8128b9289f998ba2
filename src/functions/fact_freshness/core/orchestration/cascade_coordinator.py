"""Refresh every fact of a cluster as one consistent unit."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from ..contracts.config import OrchestratorConfig
from ..contracts.facts import Cluster, Fact, UpdateRecord, utcnow
from ..contracts.resolution import ClusterProposal, MemberUpdate
from ..contracts.run_report import ItemOutcome
from ..db.fact_store import FactStore
from ..errors import LeaseLost, NotFoundError, ParseFailure, PersistenceError
from ..integration.value_resolution import ValueResolver
from .lease import LeaseManager
from .parallel_executor import BatchAborted, ParallelExecutor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StagedWrite:
    """A validated member write held in memory until commit.

    Members the proposal leaves unchanged carry no update and only get their
    refresh timestamps moved.
    """

    member: Fact
    update: Optional[MemberUpdate]
    fields: Dict[str, object]


class CascadeCoordinator:
    """Resolves a cluster once through its primary and commits all members or none."""

    def __init__(
        self,
        *,
        store: FactStore,
        resolver: ValueResolver,
        config: OrchestratorConfig,
        leases: Optional[LeaseManager] = None,
        executor: Optional[ParallelExecutor] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._config = config
        self._leases = leases or LeaseManager(store, enabled=config.lease_enabled, lease_seconds=config.lease_seconds)
        self._executor = executor or ParallelExecutor(config.max_workers)
        self._clock = clock

    def process(self, cluster: Cluster, *, method: Optional[str] = None) -> ItemOutcome:
        """Refresh *cluster*; raises on failure after guaranteeing no member stays mutated."""

        method = method or self._config.update_method
        started = time.monotonic()
        now = self._clock()
        primary = cluster.primary
        if primary is None:
            raise NotFoundError("primary fact", cluster.primary_fact_id or cluster.id)

        logger.info("Processing cluster %s (%s)", cluster.name, cluster.id)
        lease = None
        if not self._config.dry_run:
            try:
                lease = self._leases.claim(primary, now)
            except LeaseLost as exc:
                return _skipped(cluster, exc, started)

        try:
            members = self._store.fetch_cluster_members(cluster.id)
            if not members:
                raise NotFoundError("cluster members", cluster.id)
            by_id = {member.id: member for member in members}
            if primary.id not in by_id:
                raise NotFoundError("primary fact", primary.id)
            primary = by_id[primary.id]

            proposal = self._resolver.resolve_cluster(cluster, primary, members, method=method)
            next_due = now + primary.cadence
            staged = self._stage(cluster, by_id, proposal, now, next_due)
            changed = sum(1 for write in staged if write.update is not None)

            if self._config.dry_run:
                logger.info("Dry run: cluster %s would update %d facts", cluster.id, changed)
            else:
                self._commit(
                    cluster,
                    primary.id,
                    staged,
                    proposal,
                    now,
                    method,
                    lease_until=lease.until if lease else None,
                )
        except LeaseLost as exc:
            logger.warning("Cluster %s changed hands before commit; dropping result", cluster.id)
            return _skipped(cluster, exc, started)
        except Exception:
            self._leases.release(lease)
            raise

        primary_update = proposal.update_for(primary.id)
        return ItemOutcome(
            item_type="cluster",
            item_id=cluster.id,
            status="updated",
            name=cluster.name,
            facts_updated=changed,
            old_value=primary.current_value if primary_update else None,
            new_value=primary_update.updated_value if primary_update else None,
            source=proposal.source,
            confidence=proposal.confidence_label,
            validation_status="approved",
            reason="dry run" if self._config.dry_run else None,
            duration_ms=_elapsed_ms(started),
        )

    def _stage(
        self,
        cluster: Cluster,
        members: Dict[str, Fact],
        proposal: ClusterProposal,
        now: datetime,
        next_due: datetime,
    ) -> List[StagedWrite]:
        """Validate the proposal against the cluster and build every write in memory."""

        staged: List[StagedWrite] = []
        seen = set()
        for update in proposal.updates:
            member = members.get(update.fact_id)
            if member is None:
                raise ParseFailure(
                    f"Update targets fact {update.fact_id} which is not a member of cluster {cluster.id}",
                    stage="cluster_staging",
                )
            if update.fact_id in seen:
                raise ParseFailure(f"Duplicate update for fact {update.fact_id}", stage="cluster_staging")
            if not update.updated_value.strip():
                raise ParseFailure(f"Empty new value for fact {update.fact_id}", stage="cluster_staging")
            seen.add(update.fact_id)
            staged.append(
                StagedWrite(
                    member=member,
                    update=update,
                    fields={
                        "current_value": update.updated_value,
                        "last_updated": now.isoformat(),
                        "next_update": next_due.isoformat(),
                        "update_count": member.refresh_count + 1,
                        "confidence_score": proposal.confidence,
                        "source_url": proposal.source,
                    },
                )
            )
        for member_id, member in members.items():
            if member_id not in seen:
                staged.append(
                    StagedWrite(
                        member=member,
                        update=None,
                        fields={"last_updated": now.isoformat(), "next_update": next_due.isoformat()},
                    )
                )
        return staged

    def _commit(
        self,
        cluster: Cluster,
        primary_id: str,
        staged: Sequence[StagedWrite],
        proposal: ClusterProposal,
        now: datetime,
        method: str,
        *,
        lease_until: Optional[datetime] = None,
    ) -> None:
        # the primary carries the lease, so its guarded write goes first
        primary_write = next(write for write in staged if write.member.id == primary_id)
        self._store.update_fact(primary_id, primary_write.fields, lease_until=lease_until)

        others = [write for write in staged if write is not primary_write]
        try:
            self._executor.run_all(others, lambda write: self._store.update_fact(write.member.id, write.fields))
        except BatchAborted as aborted:
            self._compensate(cluster, [primary_write, *aborted.completed])
            raise PersistenceError(f"Cluster {cluster.id} member write failed: {aborted.cause}") from aborted.cause

        updated = [write for write in staged if write.update is not None]
        changes = [
            {"fact_id": write.member.id, "original_value": write.update.original_value, "updated_value": write.update.updated_value}
            for write in updated
        ]
        records = [
            UpdateRecord(
                fact_id=write.member.id,
                cluster_id=cluster.id,
                previous_value=write.member.current_value,
                new_value=write.update.updated_value,
                source=proposal.source,
                method=method,
                validation_status="approved",
                outcome="updated",
                confidence=proposal.confidence,
                reasoning=proposal.reasoning,
                metadata={**proposal.metadata, "cluster_changes": changes},
                created_at=now,
            )
            for write in updated
        ]
        try:
            self._store.insert_update_records(records)
        except PersistenceError:
            self._compensate(cluster, staged)
            raise

        try:
            self._store.touch_cluster(cluster.id, now)
        except PersistenceError as exc:
            logger.warning("Cluster %s members committed but timestamp not stamped: %s", cluster.id, exc)

    def _compensate(self, cluster: Cluster, written: Sequence[StagedWrite]) -> None:
        """Restore the pre-commit snapshot of every member already written."""

        for write in written:
            try:
                self._store.restore_fact(write.member)
            except PersistenceError as exc:
                logger.error(
                    "Could not restore fact %s of cluster %s after failed commit: %s",
                    write.member.id,
                    cluster.id,
                    exc,
                )
        if written:
            logger.warning("Rolled back %d member write(s) of cluster %s", len(written), cluster.id)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _skipped(cluster: Cluster, exc: LeaseLost, started: float) -> ItemOutcome:
    return ItemOutcome(
        item_type="cluster",
        item_id=cluster.id,
        status="skipped",
        name=cluster.name,
        reason=str(exc),
        duration_ms=_elapsed_ms(started),
    )
