"""Enumerate the clusters and unclustered facts that are due for refresh."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from ..contracts.facts import Cluster, Fact, utcnow

logger = logging.getLogger(__name__)


class DueWorkSource(Protocol):
    def fetch_due_clusters(self, now: datetime) -> List[Cluster]: ...

    def fetch_due_facts(self, now: datetime) -> List[Fact]: ...


@dataclass(slots=True)
class DueWork:
    """Ordered work for one run: clusters first, then unclustered facts."""

    clusters: List[Cluster] = field(default_factory=list)
    facts: List[Fact] = field(default_factory=list)
    rejected_clusters: List[Tuple[Cluster, str]] = field(default_factory=list)
    as_of: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not (self.clusters or self.facts or self.rejected_clusters)


class DueWorkFinder:
    """Pure read over the fact store.

    Store failures surface as ``DueWorkUnavailableError`` from the store and
    are not caught here.
    """

    def __init__(self, store: DueWorkSource) -> None:
        self._store = store

    def find(self, now: Optional[datetime] = None) -> DueWork:
        now = now or utcnow()
        work = DueWork(as_of=now)

        for cluster in self._store.fetch_due_clusters(now):
            if not cluster.is_active:
                continue
            problem = cluster.integrity_problem()
            if problem:
                logger.warning("Cluster %s rejected: %s", cluster.id, problem)
                work.rejected_clusters.append((cluster, problem))
                continue
            if cluster.primary is None or not cluster.primary.is_due(now):
                continue
            work.clusters.append(cluster)

        for fact in self._store.fetch_due_facts(now):
            if fact.cluster_id:
                continue
            if not fact.is_due(now):
                continue
            work.facts.append(fact)

        # sorted() is stable, so equal priorities keep store order
        work.clusters = sorted(work.clusters, key=lambda cluster: -cluster.priority)
        work.facts = sorted(work.facts, key=lambda fact: -fact.priority)

        logger.info(
            "Found due work: %d clusters, %d single facts, %d rejected clusters",
            len(work.clusters),
            len(work.facts),
            len(work.rejected_clusters),
        )
        return work
